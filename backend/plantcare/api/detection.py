import asyncio
from pathlib import Path
from typing import Dict, List

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi import status as http_status

from plantcare.core.config import Settings
from plantcare.core.exceptions import (
    ImageDecodeError,
    ImageNotFoundError,
    InferenceError,
    InvalidUploadError,
    ModelConfigurationError,
    ModelPoolUnavailableError,
)
from plantcare.models.classifier import inspect_classifier
from plantcare.models.disease_mapping import UNKNOWN_DISEASE_NAME
from plantcare.schemas.detection import (
    BatchAnalysisResponse,
    BatchItemOut,
    BatchSummaryOut,
    ConfidenceSettingsResponse,
    DetectedDiseaseOut,
    DiseaseMappingOut,
    DiseaseMappingsResponse,
    DiseaseOut,
    EnhancedDetectionResponse,
    EnhancedResultOut,
    MappedClassOut,
    ModelInspectionOut,
    ModelInspectionResponse,
    ModelPerformanceResponse,
    PredictionOut,
    ThresholdOut,
    TopPredictionsResponse,
    TreatmentPlanOut,
)
from plantcare.services.confidence import RELIABILITY_GUIDANCE, Reliability
from plantcare.services.detection import DetectionService, EnhancedResult
from plantcare.services.treatment import generate_treatment_plan, monitoring_steps, preventive_measures
from plantcare.services.uploads import save_upload

router = APIRouter(prefix="/detection", tags=["detection"])

ENHANCEMENT_FEATURES = [
    "Ensemble prediction with multiple models",
    "Image augmentation for robustness",
    "Confidence validation scoring",
    "Alternative prediction suggestions",
]


def get_detection_service(request: Request) -> DetectionService:
    return request.app.state.detection_service


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with, not the process defaults."""
    return request.app.state.settings


async def _store_upload(file: UploadFile, settings: Settings) -> Path:
    data = await file.read()
    try:
        return await asyncio.to_thread(
            save_upload,
            data,
            original_name=file.filename,
            content_type=file.content_type,
            upload_dir=settings.upload_dir,
            max_bytes=settings.max_upload_bytes,
        )
    except InvalidUploadError as exc:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


async def _detect(service: DetectionService, image_path: Path) -> EnhancedResult:
    try:
        return await service.run_enhanced_detection(image_path)
    except (ImageNotFoundError, ImageDecodeError) as exc:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail="Could not read the provided image. Please upload a valid JPG/PNG/WebP file.",
        ) from exc
    except (ModelPoolUnavailableError, ModelConfigurationError) as exc:
        raise HTTPException(
            status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Disease detection models are not available. Train a model with train_classifier.py first.",
        ) from exc
    except InferenceError as exc:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error processing enhanced detection.",
        ) from exc


def _result_out(result: EnhancedResult) -> EnhancedResultOut:
    return EnhancedResultOut(
        primary_prediction=PredictionOut.model_validate(result.primary),
        alternative_predictions=[PredictionOut.model_validate(p) for p in result.alternatives],
        confidence=result.confidence,
        confidence_display=f"{result.confidence * 100:.2f}%",
        reliability=result.reliability,
        validation_score=result.validation_score,
        validation_score_display=f"{result.validation_score:.1f}%",
        recommendations=list(result.recommendations),
    )


@router.post(
    "/enhanced-detect",
    response_model=EnhancedDetectionResponse,
    status_code=http_status.HTTP_200_OK,
    summary="Detect a plant disease with the model ensemble",
)
async def enhanced_detect(
    image: UploadFile = File(..., description="Leaf photo to analyse."),
    service: DetectionService = Depends(get_detection_service),
    settings: Settings = Depends(get_app_settings),
) -> EnhancedDetectionResponse:
    """Return the ensemble prediction, its reliability and a treatment plan."""
    image_path = await _store_upload(image, settings)
    result = await _detect(service, image_path)

    record = service.lookup(result.primary.class_index)
    treatment_plan = None
    if record is not None:
        plan = generate_treatment_plan(record, result.confidence, result.reliability)
        treatment_plan = TreatmentPlanOut.model_validate(plan, from_attributes=True)

    return EnhancedDetectionResponse(
        image=image_path.name,
        enhanced_result=_result_out(result),
        disease=DiseaseOut.from_record(record),
        treatment_plan=treatment_plan,
        preventive=preventive_measures(record.plant_type) if record else [],
        monitoring=monitoring_steps(),
    )


@router.post("/detect", response_model=TopPredictionsResponse, summary="Top-5 disease candidates")
async def detect(
    image: UploadFile = File(..., description="Leaf photo to analyse."),
    service: DetectionService = Depends(get_detection_service),
    settings: Settings = Depends(get_app_settings),
) -> TopPredictionsResponse:
    image_path = await _store_upload(image, settings)
    result = await _detect(service, image_path)
    return TopPredictionsResponse(
        image=image_path.name,
        predictions=[
            DetectedDiseaseOut(
                prediction=PredictionOut.model_validate(pred),
                disease=DiseaseOut.from_record(service.lookup(pred.class_index)),
            )
            for pred in result.top_predictions
        ],
    )


@router.post("/batch-analysis", response_model=BatchAnalysisResponse, summary="Analyse several images")
async def batch_analysis(
    images: List[UploadFile] = File(..., description="Leaf photos to analyse."),
    service: DetectionService = Depends(get_detection_service),
    settings: Settings = Depends(get_app_settings),
) -> BatchAnalysisResponse:
    if len(images) > settings.max_batch_files:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail=f"At most {settings.max_batch_files} images can be analysed at once.",
        )

    paths = [await _store_upload(upload, settings) for upload in images]
    try:
        analysis = await service.run_batch_analysis(paths)
    except (ModelPoolUnavailableError, ModelConfigurationError) as exc:
        raise HTTPException(
            status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Disease detection models are not available.",
        ) from exc
    except InferenceError as exc:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error processing batch analysis.",
        ) from exc

    return BatchAnalysisResponse(
        total_images=len(analysis.items),
        results=[
            BatchItemOut(
                filename=item.filename,
                result=_result_out(item.result) if item.result is not None else None,
                disease=DiseaseOut.from_record(item.disease),
                error=item.error,
            )
            for item in analysis.items
        ],
        summary=BatchSummaryOut.model_validate(analysis.summary),
    )


@router.get("/confidence-settings", response_model=ConfidenceSettingsResponse)
async def confidence_settings(
    service: DetectionService = Depends(get_detection_service),
) -> ConfidenceSettingsResponse:
    thresholds = service.assessor.thresholds
    return ConfidenceSettingsResponse(
        thresholds={
            Reliability.HIGH.value: ThresholdOut(
                confidence=thresholds.high_confidence,
                validation_score=thresholds.high_validation_score,
            ),
            Reliability.MEDIUM.value: ThresholdOut(
                confidence=thresholds.medium_confidence,
                validation_score=thresholds.medium_validation_score,
            ),
            Reliability.LOW.value: ThresholdOut(confidence=0.0, validation_score=0.0),
        },
        ambiguity_margin=thresholds.ambiguity_margin,
        recommendations={tier.value: text for tier, text in RELIABILITY_GUIDANCE.items()},
    )


@router.get("/model-performance", response_model=ModelPerformanceResponse)
async def model_performance(
    service: DetectionService = Depends(get_detection_service),
) -> ModelPerformanceResponse:
    plants = sorted({r.plant_type for r in service.knowledge_base.records.values() if r.plant_type != "None"})
    return ModelPerformanceResponse(
        ready=service.pool.ready,
        models=service.pool.describe(),
        classes=service.predictor.expected_classes or service.knowledge_base.expected_classes,
        enhancement_features=ENHANCEMENT_FEATURES,
        supported_plants=plants,
    )


@router.get("/disease-mappings", response_model=DiseaseMappingsResponse)
async def disease_mappings(
    service: DetectionService = Depends(get_detection_service),
) -> DiseaseMappingsResponse:
    records = sorted(service.knowledge_base.records.values(), key=lambda r: r.class_index)
    mappings = [DiseaseMappingOut.model_validate(record) for record in records]
    by_plant_type: Dict[str, List[DiseaseMappingOut]] = {}
    for mapping in mappings:
        by_plant_type.setdefault(mapping.plant_type, []).append(mapping)
    return DiseaseMappingsResponse(
        total_mappings=len(mappings),
        mappings=mappings,
        by_plant_type=by_plant_type,
    )


@router.get("/inspect-model", response_model=ModelInspectionResponse)
async def inspect_model(
    service: DetectionService = Depends(get_detection_service),
    settings: Settings = Depends(get_app_settings),
) -> ModelInspectionResponse:
    """Load the pool if needed and report what each model outputs."""
    try:
        models = await service.pool.get_models()
    except (ModelPoolUnavailableError, ModelConfigurationError) as exc:
        raise HTTPException(
            status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    inspected = []
    for model in models:
        info = await asyncio.to_thread(inspect_classifier, model.module, settings.image_size, model.device)
        inspected.append(
            ModelInspectionOut(
                path=str(model.path),
                input_shape=list(info.input_shape),
                output_shape=list(info.output_shape),
                num_classes=info.num_classes,
                num_parameters=info.num_parameters,
            )
        )

    num_classes = max(m.num_classes for m in inspected)
    mapped = []
    for class_index in range(num_classes):
        record = service.lookup(class_index)
        mapped.append(
            MappedClassOut(
                class_index=class_index,
                disease_name=record.name if record else UNKNOWN_DISEASE_NAME,
                plant_type=record.plant_type if record else UNKNOWN_DISEASE_NAME,
            )
        )
    return ModelInspectionResponse(models=inspected, mapped_classes=mapped, total_mapped_classes=len(mapped))
