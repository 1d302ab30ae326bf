from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from plantcare.models.disease_mapping import DiseaseRecord
from plantcare.services.confidence import Reliability

SEVERITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")

_CRITICAL_DISEASES = ("Tomato Late Blight", "Potato Late Blight", "Fire Blight", "Bacterial Wilt")
_HIGH_SEVERITY_DISEASES = ("Tomato Early Blight", "Apple Scab", "Powdery Mildew", "Bacterial Spot")
_URGENT_DISEASES = ("Late Blight", "Fire Blight", "Bacterial Wilt")

_COMMON_PREVENTION = [
    "Maintain proper plant spacing for air circulation",
    "Water at the base of plants to avoid wetting leaves",
    "Remove dead or diseased plant material promptly",
    "Practice crop rotation",
    "Use disease-resistant varieties when available",
]

_PLANT_PREVENTION = {
    "Tomato": ["Stake plants for better air circulation", "Mulch around plants to prevent soil splash", "Avoid overhead watering"],
    "Potato": ["Use certified seed potatoes", "Hill soil around plants", "Harvest in dry weather"],
    "Apple": ["Prune for open canopy", "Clean up fallen leaves and fruit", "Apply dormant oil in early spring"],
}

_MONITORING_STEPS = [
    "Check plants daily for new symptoms",
    "Monitor weather conditions that favor disease development",
    "Document any changes with photos",
    "Track treatment effectiveness",
    "Record environmental conditions (humidity, temperature)",
    "Schedule follow-up inspections every 3-5 days",
]


@dataclass(frozen=True)
class ImmediateAction:
    action: str
    description: str
    materials: List[str]
    timeframe: str
    priority: int
    cost: str


@dataclass(frozen=True)
class PreventiveMeasure:
    measure: str
    description: str
    frequency: str
    season: str
    effectiveness: int


@dataclass(frozen=True)
class MonitoringPlan:
    frequency: str
    indicators: List[str]
    alert_thresholds: Dict[str, str]
    documentation: List[str]


@dataclass(frozen=True)
class ScheduleEntry:
    week: int
    actions: List[str]
    checkpoints: List[str]


@dataclass(frozen=True)
class TreatmentPlan:
    immediate: List[ImmediateAction]
    preventive: List[PreventiveMeasure]
    monitoring: MonitoringPlan
    schedule: List[ScheduleEntry]
    severity: str
    urgency: str
    base_treatments: List[str] = field(default_factory=list)


def preventive_measures(plant_type: str) -> List[str]:
    """Short list of prevention tips shown next to a detection."""
    return [*_COMMON_PREVENTION, *_PLANT_PREVENTION.get(plant_type, [])]


def monitoring_steps() -> List[str]:
    return list(_MONITORING_STEPS)


def assess_severity(
    disease_name: str,
    confidence: float,
    reliability: Reliability,
    provided: Optional[str] = None,
) -> str:
    if provided:
        if provided not in SEVERITIES:
            raise ValueError(f"Unknown severity '{provided}'. Expected one of {SEVERITIES}.")
        return provided

    if any(name in disease_name for name in _CRITICAL_DISEASES):
        return "CRITICAL"
    if any(name in disease_name for name in _HIGH_SEVERITY_DISEASES):
        return "HIGH" if confidence > 0.8 else "MEDIUM"

    if confidence > 0.9 and reliability is Reliability.HIGH:
        return "HIGH"
    if confidence > 0.7 and reliability is Reliability.MEDIUM:
        return "MEDIUM"
    return "LOW"


def determine_urgency(disease_name: str, severity: str) -> str:
    if any(name in disease_name for name in _URGENT_DISEASES):
        return "URGENT"
    return {"CRITICAL": "URGENT", "HIGH": "HIGH", "MEDIUM": "MEDIUM"}.get(severity, "LOW")


def _immediate_actions(disease_name: str, severity: str, urgency: str) -> List[ImmediateAction]:
    actions = [
        ImmediateAction(
            action="Isolate Affected Plants",
            description="Immediately isolate affected plants to prevent spread",
            materials=["Pruning shears", "Disinfectant", "Disposal bags"],
            timeframe="Within 24 hours",
            priority=1,
            cost="LOW",
        ),
        ImmediateAction(
            action="Remove Infected Plant Parts",
            description="Carefully remove and dispose of infected leaves, stems, or fruits",
            materials=["Sterilized pruning tools", "Plastic bags", "Gloves"],
            timeframe="Immediately",
            priority=2,
            cost="LOW",
        ),
    ]

    if any(word in disease_name for word in ("Fungal", "Blight", "Mildew")):
        actions.append(
            ImmediateAction(
                action="Apply Fungicide",
                description="Apply appropriate fungicide as per disease type",
                materials=["Copper-based fungicide", "Sprayer", "Protective equipment"],
                timeframe="Within 48 hours",
                priority=3,
                cost="MEDIUM",
            )
        )
    if "Bacterial" in disease_name:
        actions.append(
            ImmediateAction(
                action="Apply Bactericide",
                description="Apply copper-based bactericide to affected areas",
                materials=["Copper bactericide", "Sprayer", "Protective equipment"],
                timeframe="Within 48 hours",
                priority=3,
                cost="MEDIUM",
            )
        )
    if "Virus" in disease_name:
        actions.append(
            ImmediateAction(
                action="Vector Control",
                description="Control insects that may spread the virus",
                materials=["Insecticidal soap", "Neem oil", "Yellow sticky traps"],
                timeframe="Within 72 hours",
                priority=3,
                cost="MEDIUM",
            )
        )
    if severity == "CRITICAL" or urgency == "URGENT":
        actions.append(
            ImmediateAction(
                action="Emergency Plant Nutrition",
                description="Provide balanced nutrition to boost plant immunity",
                materials=["Balanced fertilizer", "Foliar spray", "Watering system"],
                timeframe="Within 24 hours",
                priority=4,
                cost="MEDIUM",
            )
        )
    return actions


def _preventive_plan(plant_type: str, disease_name: str) -> List[PreventiveMeasure]:
    measures = [
        PreventiveMeasure("Proper Plant Spacing", "Maintain adequate spacing between plants for air circulation", "At planting", "All seasons", 85),
        PreventiveMeasure("Sanitation Practices", "Remove fallen leaves and plant debris regularly", "Weekly", "Growing season", 80),
        PreventiveMeasure("Watering Management", "Water at the base of plants, avoid wetting foliage", "Daily", "Growing season", 75),
    ]

    plant_specific = {
        "Tomato": [
            PreventiveMeasure("Staking and Pruning", "Stake plants and prune lower branches for air circulation", "Monthly", "Growing season", 70),
            PreventiveMeasure("Mulching", "Apply mulch to prevent soil splash on lower leaves", "At planting", "Growing season", 65),
        ],
        "Potato": [
            PreventiveMeasure("Hilling", "Hill soil around plants to prevent tuber exposure", "Bi-weekly", "Growing season", 80),
            PreventiveMeasure("Certified Seed", "Use only certified disease-free seed potatoes", "At planting", "Spring", 90),
        ],
        "Apple": [
            PreventiveMeasure("Dormant Oil Application", "Apply dormant oil to control overwintering pests", "Annually", "Late winter", 70),
            PreventiveMeasure("Pruning for Air Circulation", "Prune to maintain open canopy structure", "Annually", "Winter", 75),
        ],
    }
    measures.extend(plant_specific.get(plant_type, []))

    if "Fungal" in disease_name or "Blight" in disease_name:
        measures.append(
            PreventiveMeasure(
                "Preventive Fungicide Application",
                "Apply preventive fungicide during high-risk periods",
                "Bi-weekly",
                "High humidity periods",
                85,
            )
        )
    return measures


def _monitoring_plan(severity: str) -> MonitoringPlan:
    frequency = {"CRITICAL": "Daily", "HIGH": "Every 2 days", "MEDIUM": "Every 3 days"}.get(severity, "Weekly")
    return MonitoringPlan(
        frequency=frequency,
        indicators=[
            "New symptom appearance",
            "Symptom progression",
            "Plant vigor changes",
            "Environmental conditions",
            "Treatment effectiveness",
        ],
        alert_thresholds={
            "symptom_spread": "10% increase in affected area",
            "plant_decline": "Visible wilting or yellowing",
            "weather_conditions": "High humidity + warm temperatures",
            "treatment_failure": "No improvement after 7 days",
        },
        documentation=[
            "Photo documentation of symptoms",
            "Weather condition logs",
            "Treatment application records",
            "Symptom progression notes",
            "Recovery progress tracking",
        ],
    )


def _schedule(severity: str) -> List[ScheduleEntry]:
    schedule = [
        ScheduleEntry(
            week=1,
            actions=["Isolate affected plants", "Remove infected plant parts", "Apply initial treatment", "Implement sanitation measures"],
            checkpoints=["Assess spread containment", "Verify treatment application", "Document initial condition"],
        ),
        ScheduleEntry(
            week=2,
            actions=["Assess treatment effectiveness", "Reapply treatment if necessary", "Monitor environmental conditions", "Continue sanitation practices"],
            checkpoints=["Evaluate symptom progression", "Check for new infections", "Review treatment success"],
        ),
        ScheduleEntry(
            week=3,
            actions=["Continue monitoring", "Implement preventive measures", "Adjust treatment if needed", "Document recovery progress"],
            checkpoints=["Assess overall plant health", "Evaluate preventive measures", "Plan long-term management"],
        ),
    ]
    if severity in ("HIGH", "CRITICAL"):
        schedule.append(
            ScheduleEntry(
                week=4,
                actions=["Intensive monitoring", "Nutritional support", "Environmental optimization", "Prepare for next season"],
                checkpoints=["Final assessment", "Plan prevention for next season", "Document lessons learned"],
            )
        )
    return schedule


def generate_treatment_plan(
    record: DiseaseRecord,
    confidence: float,
    reliability: Reliability,
    severity: Optional[str] = None,
) -> TreatmentPlan:
    """Build a full treatment plan for a detected disease."""
    assessed = assess_severity(record.name, confidence, reliability, severity)
    urgency = determine_urgency(record.name, assessed)
    return TreatmentPlan(
        immediate=_immediate_actions(record.name, assessed, urgency),
        preventive=_preventive_plan(record.plant_type, record.name),
        monitoring=_monitoring_plan(assessed),
        schedule=_schedule(assessed),
        severity=assessed,
        urgency=urgency,
        base_treatments=[step for treatment in record.treatments for step in treatment.steps],
    )
