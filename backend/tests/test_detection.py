import asyncio
import threading

import pytest
import torch

from plantcare.core.config import Settings
from plantcare.core.exceptions import ImageNotFoundError, InferenceError, ModelPoolUnavailableError
from plantcare.models.disease_mapping import DISEASE_TABLE, DiseaseKnowledgeBase
from plantcare.services.confidence import Reliability
from plantcare.services.detection import DetectionService, summarise_batch
from plantcare.services.ensemble import EnsembleOutput, RankedPrediction
from plantcare.services.model_pool import LoadedModel, ModelPool

from stubs import FailingModule, make_model, oversized_png_bytes


def build_service(models, tmp_path, num_classes=4):
    by_path = {}
    paths = []
    for i, model in enumerate(models):
        path = tmp_path / f"model_{i}"
        path.mkdir()
        by_path[path] = model
        paths.append(path)

    pool = ModelPool(paths, loader=lambda p, device: by_path[p], expected_classes=num_classes)
    settings = Settings(num_classes=num_classes, image_size=16, model_paths=paths)
    return DetectionService.from_settings(
        settings,
        pool=pool,
        knowledge_base=DiseaseKnowledgeBase.from_records(DISEASE_TABLE[:num_classes]),
    )


def test_two_models_five_variants_end_to_end(tmp_path, leaf_path):
    confident = make_model([[0.01, 0.01, 0.97, 0.01]])
    wavering = make_model(
        [
            [0.01, 0.01, 0.97, 0.01],
            [0.01, 0.01, 0.97, 0.01],
            [0.01, 0.01, 0.97, 0.01],
            [0.1, 0.6, 0.2, 0.1],
            [0.1, 0.6, 0.2, 0.1],
        ]
    )
    service = build_service([confident, wavering], tmp_path)

    result = asyncio.run(service.run_enhanced_detection(leaf_path))

    assert result.num_passes == 10
    assert result.primary.class_index == 2
    assert result.primary.class_name == "Apple Cedar Rust"
    assert result.confidence == pytest.approx((8 * 0.97 + 2 * 0.2) / 10)
    assert result.validation_score == pytest.approx(80.0)
    assert result.reliability is Reliability.MEDIUM
    assert [p.class_index for p in result.alternatives] == [1, 0, 3]
    assert result.top_predictions[0] == result.primary


def test_alternatives_are_capped_at_three(tmp_path, leaf_path):
    model = make_model([[0.5, 0.2, 0.15, 0.1, 0.05]])
    service = build_service([model], tmp_path, num_classes=5)

    result = asyncio.run(service.run_enhanced_detection(leaf_path))

    assert len(result.top_predictions) == 5
    assert len(result.alternatives) == 3


def test_unknown_class_index_still_produces_a_result(tmp_path):
    service = build_service([make_model([[0.25] * 4])], tmp_path)
    output = EnsembleOutput(
        vectors=[[0.0] * 999 + [0.95]],
        averaged=[0.0] * 999 + [0.95],
        ranked=[RankedPrediction(class_index=999, confidence=0.95)],
    )

    result = service.build_result(output)

    assert result.primary.class_name == "Unknown"
    assert result.primary.class_index == 999
    assert service.lookup(999) is None


def test_missing_image_is_reported(tmp_path):
    service = build_service([make_model([[0.25] * 4])], tmp_path)
    with pytest.raises(ImageNotFoundError):
        asyncio.run(service.run_enhanced_detection(tmp_path / "gone.jpg"))


def test_unavailable_pool_propagates(tmp_path, leaf_path):
    service = build_service([], tmp_path)
    with pytest.raises(ModelPoolUnavailableError):
        asyncio.run(service.run_enhanced_detection(leaf_path))


def test_inference_failure_propagates(tmp_path, leaf_path):
    broken = LoadedModel(path=tmp_path, module=FailingModule(), num_classes=4, outputs_probabilities=True)
    service = build_service([broken], tmp_path)
    with pytest.raises(InferenceError):
        asyncio.run(service.run_enhanced_detection(leaf_path))


def test_batch_analysis_reports_unreadable_files(tmp_path, leaf_path):
    service = build_service([make_model([[0.96, 0.02, 0.01, 0.01]])], tmp_path)
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not an image")

    analysis = asyncio.run(service.run_batch_analysis([leaf_path, broken, leaf_path]))

    assert [item.filename for item in analysis.items] == ["leaf.png", "broken.png", "leaf.png"]
    assert analysis.items[1].result is None
    assert analysis.items[1].error
    assert analysis.summary.diseases_detected == {"Apple Scab": 2}
    assert analysis.summary.reliability_distribution == {"HIGH": 2}
    assert analysis.summary.high_confidence_count == 2
    assert analysis.summary.failed_count == 1
    assert analysis.summary.average_confidence == pytest.approx(0.96)


def test_empty_batch_summary():
    summary = summarise_batch([])
    assert summary.average_confidence == 0.0
    assert summary.diseases_detected == {}


def test_oversized_image_is_a_per_item_error_in_a_batch(tmp_path, leaf_path):
    service = build_service([make_model([[0.96, 0.02, 0.01, 0.01]])], tmp_path)
    huge = tmp_path / "huge.png"
    huge.write_bytes(oversized_png_bytes())

    analysis = asyncio.run(service.run_batch_analysis([leaf_path, huge]))

    assert analysis.items[0].result is not None
    assert analysis.items[1].result is None
    assert analysis.items[1].error
    assert analysis.summary.failed_count == 1


def test_inference_runs_off_the_event_loop_thread(tmp_path, leaf_path):
    seen = []

    class ThreadRecordingModule(torch.nn.Module):
        def forward(self, x):
            seen.append(threading.get_ident())
            return torch.tensor([[0.7, 0.1, 0.1, 0.1]])

    model = LoadedModel(path=tmp_path, module=ThreadRecordingModule(), num_classes=4, outputs_probabilities=True)
    service = build_service([model], tmp_path)

    async def scenario():
        loop_thread = threading.get_ident()
        results = await asyncio.gather(
            service.run_enhanced_detection(leaf_path),
            service.run_enhanced_detection(leaf_path),
        )
        return loop_thread, results

    loop_thread, results = asyncio.run(scenario())

    assert [r.primary.class_index for r in results] == [0, 0]
    assert len(seen) == 10
    assert loop_thread not in seen
