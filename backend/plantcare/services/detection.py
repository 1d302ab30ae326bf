from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import torch

from plantcare.core.config import Settings
from plantcare.core.exceptions import ImageDecodeError, ImageNotFoundError
from plantcare.models.disease_mapping import DiseaseKnowledgeBase, DiseaseRecord
from plantcare.services.confidence import ConfidenceAssessor, ConfidenceThresholds, Reliability
from plantcare.services.ensemble import EnsembleOutput, EnsemblePredictor, RankedPrediction
from plantcare.services.model_pool import ModelPool
from plantcare.services.preprocessing import ImagePreprocessor

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3


@dataclass(frozen=True)
class LabelledPrediction:
    class_index: int
    confidence: float
    class_name: str


@dataclass(frozen=True)
class EnhancedResult:
    primary: LabelledPrediction
    alternatives: Tuple[LabelledPrediction, ...]
    confidence: float
    reliability: Reliability
    validation_score: float
    recommendations: Tuple[str, ...]
    top_predictions: Tuple[LabelledPrediction, ...]
    num_passes: int


@dataclass(frozen=True)
class BatchItem:
    filename: str
    result: Optional[EnhancedResult]
    disease: Optional[DiseaseRecord]
    error: Optional[str] = None


@dataclass(frozen=True)
class BatchSummary:
    diseases_detected: Dict[str, int]
    reliability_distribution: Dict[str, int]
    average_confidence: float
    high_confidence_count: int
    failed_count: int


@dataclass(frozen=True)
class BatchAnalysis:
    items: List[BatchItem]
    summary: BatchSummary


def summarise_batch(items: Sequence[BatchItem]) -> BatchSummary:
    completed = [item for item in items if item.result is not None]
    diseases = Counter(item.disease.name if item.disease else "Unknown" for item in completed)
    reliabilities = Counter(item.result.reliability.value for item in completed)
    average = sum(item.result.confidence for item in completed) / len(completed) if completed else 0.0
    return BatchSummary(
        diseases_detected=dict(diseases),
        reliability_distribution=dict(reliabilities),
        average_confidence=average,
        high_confidence_count=reliabilities.get(Reliability.HIGH.value, 0),
        failed_count=len(items) - len(completed),
    )


class DetectionService:
    """Preprocess, ensemble, assess and label a single leaf image."""

    def __init__(
        self,
        pool: ModelPool,
        preprocessor: ImagePreprocessor,
        predictor: EnsemblePredictor,
        assessor: ConfidenceAssessor,
        knowledge_base: DiseaseKnowledgeBase,
    ) -> None:
        self.pool = pool
        self.preprocessor = preprocessor
        self.predictor = predictor
        self.assessor = assessor
        self.knowledge_base = knowledge_base

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        pool: Optional[ModelPool] = None,
        knowledge_base: Optional[DiseaseKnowledgeBase] = None,
    ) -> "DetectionService":
        if pool is None:
            pool = ModelPool(settings.model_paths, expected_classes=settings.num_classes, device=settings.device)
        return cls(
            pool=pool,
            preprocessor=ImagePreprocessor(
                image_size=settings.image_size,
                brightness_delta=settings.brightness_delta,
                darken_factor=settings.darken_factor,
                contrast_factor=settings.contrast_factor,
            ),
            predictor=EnsemblePredictor(
                expected_classes=settings.num_classes,
                top_k=settings.top_k,
                min_confidence=settings.min_confidence,
            ),
            assessor=ConfidenceAssessor(ConfidenceThresholds.from_settings(settings)),
            knowledge_base=knowledge_base or DiseaseKnowledgeBase.default(),
        )

    def lookup(self, class_index: int) -> Optional[DiseaseRecord]:
        return self.knowledge_base.get(class_index)

    def _label(self, prediction: RankedPrediction) -> LabelledPrediction:
        return LabelledPrediction(
            class_index=prediction.class_index,
            confidence=prediction.confidence,
            class_name=self.knowledge_base.name_for(prediction.class_index),
        )

    def build_result(self, output: EnsembleOutput) -> EnhancedResult:
        labelled = tuple(self._label(pred) for pred in output.ranked)
        assessment = self.assessor.assess(output.vectors, output.ranked, self.knowledge_base.name_for)
        primary = labelled[0]
        return EnhancedResult(
            primary=primary,
            alternatives=labelled[1 : 1 + MAX_ALTERNATIVES],
            confidence=primary.confidence,
            reliability=assessment.reliability,
            validation_score=assessment.validation_score,
            recommendations=assessment.recommendations,
            top_predictions=labelled,
            num_passes=len(output.vectors),
        )

    async def run_enhanced_detection(self, image_path: Union[str, Path]) -> EnhancedResult:
        """Run the full ensemble on one image stored on disk.

        Decoding and inference run in worker threads so concurrent requests
        interleave; the pooled models are read-only after loading.
        """
        tensors: List[torch.Tensor] = []
        try:
            tensors.extend(await asyncio.to_thread(self.preprocessor.preprocess, image_path))
            models = await self.pool.get_models()
            output = await asyncio.to_thread(self.predictor.predict, models, tensors)
        finally:
            tensors.clear()

        result = self.build_result(output)
        logger.info(
            "Detected class %d (%s) confidence=%.4f reliability=%s validation=%.1f over %d passes",
            result.primary.class_index,
            result.primary.class_name,
            result.confidence,
            result.reliability.value,
            result.validation_score,
            result.num_passes,
        )
        return result

    async def run_batch_analysis(self, image_paths: Sequence[Union[str, Path]]) -> BatchAnalysis:
        """Analyse several images; unreadable ones are reported, not fatal."""
        items: List[BatchItem] = []
        for image_path in image_paths:
            filename = Path(image_path).name
            try:
                result = await self.run_enhanced_detection(image_path)
            except (ImageNotFoundError, ImageDecodeError) as exc:
                logger.warning("Skipping %s in batch analysis: %s", filename, exc)
                items.append(BatchItem(filename=filename, result=None, disease=None, error=str(exc)))
                continue
            items.append(
                BatchItem(filename=filename, result=result, disease=self.lookup(result.primary.class_index))
            )
        return BatchAnalysis(items=items, summary=summarise_batch(items))
