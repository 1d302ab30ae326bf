import pytest
from fastapi.testclient import TestClient

from plantcare.core.config import Settings
from plantcare.main import create_app
from plantcare.models.disease_mapping import DISEASE_TABLE, DiseaseKnowledgeBase
from plantcare.services.detection import DetectionService
from plantcare.services.model_pool import ModelPool

from stubs import make_model, oversized_png_bytes

ROWS = [[0.94, 0.03, 0.02, 0.01]]


def _client(tmp_path, rows=ROWS, with_model=True, **overrides):
    model_dir = tmp_path / "model"
    if with_model:
        model_dir.mkdir()
    options = {"num_classes": 4, "image_size": 16, "model_paths": [model_dir], "upload_dir": tmp_path / "uploads"}
    options.update(overrides)
    settings = Settings(**options)
    pool = ModelPool([model_dir], loader=lambda p, device: make_model(rows, path=str(p)), expected_classes=4)
    service = DetectionService.from_settings(
        settings,
        pool=pool,
        knowledge_base=DiseaseKnowledgeBase.from_records(DISEASE_TABLE[:4]),
    )
    return TestClient(create_app(settings=settings, detection_service=service))


@pytest.fixture
def client(tmp_path):
    return _client(tmp_path)


def test_health_reports_lazy_pool(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "models_ready": False, "models_failed": False}


def test_enhanced_detect_returns_result_disease_and_plan(client, leaf_png, tmp_path):
    response = client.post(
        "/api/detection/enhanced-detect",
        files={"image": ("leaf.png", leaf_png, "image/png")},
    )

    assert response.status_code == 200
    body = response.json()
    result = body["enhanced_result"]
    assert result["primary_prediction"] == {"class_index": 0, "class_name": "Apple Scab", "confidence": pytest.approx(0.94)}
    assert result["reliability"] == "HIGH"
    assert result["validation_score"] == 100.0
    assert result["confidence_display"] == "94.00%"
    assert result["validation_score_display"] == "100.0%"
    assert len(result["alternative_predictions"]) == 3
    assert body["disease"]["name"] == "Apple Scab"
    assert body["treatment_plan"]["severity"] == "HIGH"
    assert body["preventive"]
    assert body["image"].startswith("plant-") and body["image"].endswith(".png")
    assert (tmp_path / "uploads" / body["image"]).exists()
    assert client.get("/").json()["models_ready"] is True


def test_detect_lists_top_predictions(client, leaf_png):
    response = client.post("/api/detection/detect", files={"image": ("leaf.png", leaf_png, "image/png")})

    assert response.status_code == 200
    predictions = response.json()["predictions"]
    assert [p["prediction"]["class_index"] for p in predictions] == [0, 1, 2, 3]
    assert predictions[0]["disease"]["plant_type"] == "Apple"


def test_rejects_unsupported_file_type(client):
    response = client.post(
        "/api/detection/enhanced-detect",
        files={"image": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400


def test_undecodable_image_is_a_client_error(client):
    response = client.post(
        "/api/detection/enhanced-detect",
        files={"image": ("leaf.png", b"garbage", "image/png")},
    )
    assert response.status_code == 400


def test_missing_models_are_reported_as_unavailable(tmp_path, leaf_png):
    client = _client(tmp_path, with_model=False)
    response = client.post(
        "/api/detection/enhanced-detect",
        files={"image": ("leaf.png", leaf_png, "image/png")},
    )
    assert response.status_code == 503
    assert client.get("/").json()["models_failed"] is True


def test_batch_analysis_summarises(client, leaf_png):
    response = client.post(
        "/api/detection/batch-analysis",
        files=[
            ("images", ("a.png", leaf_png, "image/png")),
            ("images", ("b.png", leaf_png, "image/png")),
        ],
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_images"] == 2
    assert body["summary"]["diseases_detected"] == {"Apple Scab": 2}
    assert body["summary"]["high_confidence_count"] == 2


def test_confidence_settings(client):
    body = client.get("/api/detection/confidence-settings").json()
    assert body["thresholds"]["HIGH"] == {"confidence": 0.9, "validation_score": 85.0}
    assert body["thresholds"]["MEDIUM"] == {"confidence": 0.7, "validation_score": 70.0}
    assert body["ambiguity_margin"] == 0.1


def test_model_performance(client):
    body = client.get("/api/detection/model-performance").json()
    assert body["classes"] == 4
    assert body["ready"] is False
    assert body["supported_plants"] == ["Apple"]


def test_uploads_use_the_settings_the_app_was_built_with(tmp_path, leaf_png):
    custom_dir = tmp_path / "custom_uploads"
    client = _client(tmp_path, upload_dir=custom_dir)

    response = client.post("/api/detection/detect", files={"image": ("leaf.png", leaf_png, "image/png")})

    assert response.status_code == 200
    assert (custom_dir / response.json()["image"]).exists()


def test_batch_limit_comes_from_app_settings(tmp_path, leaf_png):
    client = _client(tmp_path, max_batch_files=1)
    response = client.post(
        "/api/detection/batch-analysis",
        files=[
            ("images", ("a.png", leaf_png, "image/png")),
            ("images", ("b.png", leaf_png, "image/png")),
        ],
    )
    assert response.status_code == 400


def test_upload_size_limit_comes_from_app_settings(tmp_path, leaf_png):
    client = _client(tmp_path, max_upload_bytes=len(leaf_png) - 1)
    response = client.post("/api/detection/detect", files={"image": ("leaf.png", leaf_png, "image/png")})
    assert response.status_code == 400


def test_oversized_image_is_a_client_error(client):
    response = client.post(
        "/api/detection/enhanced-detect",
        files={"image": ("huge.png", oversized_png_bytes(), "image/png")},
    )
    assert response.status_code == 400


def test_disease_mappings_grouped_by_plant(client):
    body = client.get("/api/detection/disease-mappings").json()

    assert body["total_mappings"] == 4
    assert [m["class_index"] for m in body["mappings"]] == [0, 1, 2, 3]
    assert list(body["by_plant_type"]) == ["Apple"]
    assert body["by_plant_type"]["Apple"][0]["name"] == "Apple Scab"


def test_inspect_model_reports_outputs_and_mapped_classes(client):
    body = client.get("/api/detection/inspect-model").json()

    (model,) = body["models"]
    assert model["input_shape"] == [1, 3, 16, 16]
    assert model["output_shape"] == [1, 4]
    assert model["num_classes"] == 4
    assert body["total_mapped_classes"] == 4
    assert body["mapped_classes"][3] == {"class_index": 3, "disease_name": "Apple Healthy", "plant_type": "Apple"}


def test_inspect_model_without_models_is_unavailable(tmp_path):
    client = _client(tmp_path, with_model=False)
    assert client.get("/api/detection/inspect-model").status_code == 503
