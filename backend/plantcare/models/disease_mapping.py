from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

UNKNOWN_DISEASE_NAME = "Unknown"


@dataclass(frozen=True)
class Treatment:
    name: str
    description: str
    steps: Tuple[str, ...]


@dataclass(frozen=True)
class DiseaseRecord:
    class_index: int
    name: str
    description: str
    symptoms: Tuple[str, ...]
    plant_type: str
    treatments: Tuple[Treatment, ...]


def _record(
    class_index: int,
    name: str,
    description: str,
    symptoms: Iterable[str],
    plant_type: str,
    treatment: Tuple[str, str, Iterable[str]],
) -> DiseaseRecord:
    t_name, t_description, t_steps = treatment
    return DiseaseRecord(
        class_index=class_index,
        name=name,
        description=description,
        symptoms=tuple(symptoms),
        plant_type=plant_type,
        treatments=(Treatment(name=t_name, description=t_description, steps=tuple(t_steps)),),
    )


_PREVENTIVE_TREE_CARE = (
    "Preventive Care",
    "Maintain tree health through proper care",
    ["Regular pruning", "Proper fertilization", "Adequate irrigation", "Pest monitoring"],
)

# Class indices follow the alphabetical folder order of the training dataset.
DISEASE_TABLE: Tuple[DiseaseRecord, ...] = (
    _record(
        0,
        "Apple Scab",
        "A fungal disease that affects apple trees, causing scabby lesions on leaves and fruit.",
        ["Dark spots on leaves", "Cracked fruit", "Premature leaf drop"],
        "Apple",
        (
            "Cultural Control",
            "Implement cultural practices to manage apple scab",
            ["Rake and remove fallen leaves", "Prune for better air circulation", "Apply fungicide in spring", "Use resistant varieties"],
        ),
    ),
    _record(
        1,
        "Apple Black Rot",
        "A fungal disease that causes black rot on apple fruit and leaves.",
        ["Black rot on fruit", "Leaf spots", "Cankers on branches"],
        "Apple",
        (
            "Fungicide Application",
            "Apply fungicide to control black rot",
            ["Remove infected fruit and leaves", "Apply fungicide", "Prune infected branches", "Improve air circulation"],
        ),
    ),
    _record(
        2,
        "Apple Cedar Rust",
        "A fungal disease that affects apple trees, causing orange spots on leaves.",
        ["Orange spots on leaves", "Fruit distortion", "Premature leaf drop"],
        "Apple",
        (
            "Rust Management",
            "Manage cedar rust through cultural and chemical controls",
            ["Remove nearby cedar trees", "Apply fungicide in spring", "Use resistant varieties", "Improve air circulation"],
        ),
    ),
    _record(
        3,
        "Apple Healthy",
        "A healthy apple tree showing no signs of disease.",
        ["No symptoms"],
        "Apple",
        _PREVENTIVE_TREE_CARE,
    ),
    _record(
        4,
        "Background Without Leaves",
        "Image contains no plant material - background only.",
        ["No plant visible"],
        "None",
        (
            "No Treatment Required",
            "This is not a plant disease - retake photo focusing on plant leaves",
            ["Retake photo with plant leaves visible", "Ensure good lighting", "Focus on affected plant parts", "Try a different angle"],
        ),
    ),
    _record(
        5,
        "Blueberry Healthy",
        "A healthy blueberry plant showing no signs of disease.",
        ["No symptoms"],
        "Blueberry",
        (
            "Preventive Care",
            "Maintain plant health through proper care",
            ["Maintain acidic soil (pH 4.5-5.5)", "Provide adequate water", "Mulch around plants", "Regular pruning"],
        ),
    ),
    _record(
        6,
        "Cherry Healthy",
        "A healthy cherry tree showing no signs of disease.",
        ["No symptoms"],
        "Cherry",
        _PREVENTIVE_TREE_CARE,
    ),
    _record(
        7,
        "Corn Common Rust",
        "A fungal disease that causes rust-colored pustules on corn leaves.",
        ["Rust-colored pustules", "Leaf yellowing", "Reduced yield"],
        "Corn",
        (
            "Rust Control",
            "Control common rust through cultural and chemical means",
            ["Use resistant varieties", "Apply fungicide", "Practice crop rotation", "Control plant density"],
        ),
    ),
    _record(
        8,
        "Corn Healthy",
        "A healthy corn plant showing no signs of disease.",
        ["No symptoms"],
        "Corn",
        (
            "Preventive Care",
            "Maintain plant health through proper care",
            ["Proper fertilization", "Adequate irrigation", "Pest monitoring", "Weed control"],
        ),
    ),
    _record(
        9,
        "Corn Northern Leaf Blight",
        "A fungal disease that causes long, gray-green lesions on corn leaves.",
        ["Long gray-green lesions", "Leaf death", "Reduced yield"],
        "Corn",
        (
            "Blight Management",
            "Manage northern leaf blight through cultural and chemical controls",
            ["Use resistant varieties", "Apply fungicide", "Practice crop rotation", "Control plant density"],
        ),
    ),
    _record(
        10,
        "Grape Black Rot",
        "A fungal disease that affects grape vines, causing black rot on fruit and leaves.",
        ["Black rot on fruit", "Leaf spots", "Cankers on stems"],
        "Grape",
        (
            "Fungicide Application",
            "Apply fungicide to control black rot",
            ["Remove infected fruit and leaves", "Apply fungicide", "Prune infected canes", "Improve air circulation"],
        ),
    ),
    _record(
        11,
        "Grape Esca (Black Measles)",
        "A fungal disease that causes wood decay in grape vines.",
        ["Wood decay", "Leaf yellowing", "Reduced vigor", "Black spots on leaves"],
        "Grape",
        (
            "Cultural Control",
            "Implement cultural practices to manage esca",
            ["Prune infected wood", "Apply fungicide to pruning wounds", "Improve air circulation", "Control irrigation"],
        ),
    ),
    _record(
        12,
        "Grape Healthy",
        "A healthy grape vine showing no signs of disease.",
        ["No symptoms"],
        "Grape",
        (
            "Preventive Care",
            "Maintain vine health through proper care",
            ["Regular pruning", "Proper fertilization", "Adequate irrigation", "Pest monitoring"],
        ),
    ),
    _record(
        13,
        "Grape Leaf Blight (Isariopsis Leaf Spot)",
        "A fungal disease that causes blight on grape leaves.",
        ["Leaf spots", "Leaf death", "Reduced vigor", "Brown lesions"],
        "Grape",
        (
            "Blight Control",
            "Control leaf blight through cultural and chemical means",
            ["Remove infected leaves", "Apply fungicide", "Improve air circulation", "Control irrigation"],
        ),
    ),
)


@dataclass
class DiseaseKnowledgeBase:
    """Read-only lookup from classifier output index to disease metadata."""

    records: Dict[int, DiseaseRecord]

    @classmethod
    def default(cls) -> "DiseaseKnowledgeBase":
        return cls.from_records(DISEASE_TABLE)

    @classmethod
    def from_records(cls, records: Iterable[DiseaseRecord]) -> "DiseaseKnowledgeBase":
        return cls(records={record.class_index: record for record in records})

    @property
    def expected_classes(self) -> int:
        """Width of the probability vector this table was built for."""
        return max(self.records) + 1 if self.records else 0

    def get(self, class_index: int) -> Optional[DiseaseRecord]:
        return self.records.get(int(class_index))

    def name_for(self, class_index: int) -> str:
        record = self.get(class_index)
        return record.name if record is not None else UNKNOWN_DISEASE_NAME

    def __len__(self) -> int:
        return len(self.records)


_default_knowledge_base = DiseaseKnowledgeBase.default()


def get_disease_by_class_index(class_index: int) -> Optional[DiseaseRecord]:
    return _default_knowledge_base.get(class_index)
