from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from plantcare.models.disease_mapping import DiseaseRecord
from plantcare.services.confidence import Reliability


class PredictionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    class_index: int = Field(..., description="Index of the class in the classifier output.")
    class_name: str = Field(..., description="Disease name, or 'Unknown' when the index is not mapped.")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Ensemble-averaged probability in [0, 1].")


class TreatmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    description: str
    steps: List[str]


class DiseaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    class_index: int
    name: str
    description: str
    symptoms: List[str]
    plant_type: str
    treatments: List[TreatmentOut]

    @classmethod
    def from_record(cls, record: Optional[DiseaseRecord]) -> Optional["DiseaseOut"]:
        if record is None:
            return None
        return cls.model_validate(record, from_attributes=True)


class ImmediateActionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: str
    description: str
    materials: List[str]
    timeframe: str
    priority: int
    cost: str


class PreventiveMeasureOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    measure: str
    description: str
    frequency: str
    season: str
    effectiveness: int = Field(..., ge=0, le=100, description="Estimated effectiveness in percent.")


class MonitoringPlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    frequency: str
    indicators: List[str]
    alert_thresholds: Dict[str, str]
    documentation: List[str]


class ScheduleEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    week: int
    actions: List[str]
    checkpoints: List[str]


class TreatmentPlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    severity: str = Field(..., description="LOW, MEDIUM, HIGH or CRITICAL.")
    urgency: str = Field(..., description="LOW, MEDIUM, HIGH or URGENT.")
    immediate: List[ImmediateActionOut]
    preventive: List[PreventiveMeasureOut]
    monitoring: MonitoringPlanOut
    schedule: List[ScheduleEntryOut]
    base_treatments: List[str] = Field(default_factory=list)


class EnhancedResultOut(BaseModel):
    primary_prediction: PredictionOut
    alternative_predictions: List[PredictionOut] = Field(
        default_factory=list,
        description="Up to three runner-up predictions sorted by confidence.",
    )
    confidence: float = Field(..., ge=0.0, le=1.0)
    confidence_display: str = Field(..., description="Confidence formatted as a percentage.")
    reliability: Reliability
    validation_score: float = Field(
        ...,
        ge=0.0,
        le=100.0,
        description="Share of model/variant passes agreeing with the final prediction, in percent.",
    )
    validation_score_display: str
    recommendations: List[str]


class EnhancedDetectionResponse(BaseModel):
    image: str = Field(..., description="Stored file name of the analysed upload.")
    enhanced_result: EnhancedResultOut
    disease: Optional[DiseaseOut] = Field(
        None,
        description="Knowledge base entry for the primary prediction; null when the class is not mapped.",
    )
    treatment_plan: Optional[TreatmentPlanOut] = None
    preventive: List[str] = Field(default_factory=list)
    monitoring: List[str] = Field(default_factory=list)


class DetectedDiseaseOut(BaseModel):
    prediction: PredictionOut
    disease: Optional[DiseaseOut] = None


class TopPredictionsResponse(BaseModel):
    image: str
    predictions: List[DetectedDiseaseOut] = Field(
        ...,
        description="Top predictions above the display floor, best first.",
    )


class BatchItemOut(BaseModel):
    filename: str
    result: Optional[EnhancedResultOut] = None
    disease: Optional[DiseaseOut] = None
    error: Optional[str] = None


class BatchSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    diseases_detected: Dict[str, int]
    reliability_distribution: Dict[str, int]
    average_confidence: float
    high_confidence_count: int
    failed_count: int


class BatchAnalysisResponse(BaseModel):
    total_images: int
    results: List[BatchItemOut]
    summary: BatchSummaryOut


class ThresholdOut(BaseModel):
    confidence: float
    validation_score: float


class ConfidenceSettingsResponse(BaseModel):
    thresholds: Dict[str, ThresholdOut]
    ambiguity_margin: float
    recommendations: Dict[str, str]


class ModelPerformanceResponse(BaseModel):
    ready: bool
    models: List[Dict[str, Any]]
    classes: int
    enhancement_features: List[str]
    supported_plants: List[str]


class DiseaseMappingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    class_index: int
    name: str
    plant_type: str
    description: str


class DiseaseMappingsResponse(BaseModel):
    total_mappings: int
    mappings: List[DiseaseMappingOut]
    by_plant_type: Dict[str, List[DiseaseMappingOut]]


class MappedClassOut(BaseModel):
    class_index: int
    disease_name: str
    plant_type: str


class ModelInspectionOut(BaseModel):
    path: str
    input_shape: List[int]
    output_shape: List[int]
    num_classes: int
    num_parameters: int


class ModelInspectionResponse(BaseModel):
    models: List[ModelInspectionOut]
    mapped_classes: List[MappedClassOut] = Field(
        ...,
        description="Knowledge base entry for every output index of the loaded models.",
    )
    total_mapped_classes: int
