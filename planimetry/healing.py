"""
Healing assessment from tissue distribution and serial measurements
"""

import math
import logging
from typing import Dict, List, Optional, Sequence

from .models import (
    HealingPhase,
    HealingPhaseName,
    HealingRateResult,
    HealingTrend,
    ProgressEntry,
    WoundMeasurement,
)

logger = logging.getLogger(__name__)

HEALING_PHASES: Dict[HealingPhaseName, HealingPhase] = {
    HealingPhaseName.EXTENSION: HealingPhase(
        phase=HealingPhaseName.EXTENSION,
        name='Extension Phase',
        description='Necrotic and edematous with no evidence of granulation or healthy tissue',
        characteristics=[
            'Necrotic tissue present',
            'Significant wound bed slough',
            'Moderate to heavy exudate',
            'Peri-wound erythema or edema',
            'No visible granulation tissue'
        ],
        expected_duration='3-7 days with optimal care',
        treatment_focus=[
            'Debridement of necrotic tissue',
            'Infection control',
            'Moisture balance',
            'Exudate management'
        ],
        monitoring_frequency='Daily'
    ),
    HealingPhaseName.TRANSITION: HealingPhase(
        phase=HealingPhaseName.TRANSITION,
        name='Transition Phase',
        description='Granulation up to 40% of wound surface, edema reduced, discharges minimal',
        characteristics=[
            'Early granulation tissue (1-40%)',
            'Reduced slough coverage',
            'Light to moderate exudate',
            'Reduced peri-wound inflammation',
            'Wound edges beginning to contract'
        ],
        expected_duration='7-14 days',
        treatment_focus=[
            'Promote granulation',
            'Maintain moist environment',
            'Protect new tissue',
            'Continue infection prevention'
        ],
        monitoring_frequency='Alternate Day'
    ),
    HealingPhaseName.REPAIR: HealingPhase(
        phase=HealingPhaseName.REPAIR,
        name='Repair/Proliferative Phase',
        description='Active granulation and epithelialization, minimal to no exudate',
        characteristics=[
            'Healthy granulation tissue (>40%)',
            'Active epithelialization from edges',
            'Minimal exudate',
            'Wound contraction evident',
            'Pink/red wound bed'
        ],
        expected_duration='2-4 weeks',
        treatment_focus=[
            'Protect new tissue',
            'Maintain optimal moisture',
            'Support epithelialization',
            'Prevent trauma to healing tissue'
        ],
        monitoring_frequency='Every 2-3 Days'
    ),
    HealingPhaseName.REMODELING: HealingPhase(
        phase=HealingPhaseName.REMODELING,
        name='Remodeling/Maturation Phase',
        description='Wound closed, scar maturation in progress',
        characteristics=[
            'Complete epithelialization',
            'Scar tissue forming',
            'Continued collagen reorganization',
            'Gradual increase in tensile strength'
        ],
        expected_duration='3 weeks to 2 years',
        treatment_focus=[
            'Scar management',
            'Prevent contracture',
            'UV protection'
        ],
        monitoring_frequency='Weekly to Monthly'
    ),
}


def determine_healing_phase(tissue_distribution: Dict[str, float]) -> HealingPhase:
    """
    Classify the healing phase from tissue percentages

    Remodeling is tested before repair, unlike the wound-care service this
    classification comes from, where the repair rule made it unreachable.

    Args:
        tissue_distribution: tissue type (necrotic, eschar, slough,
            granulation, epithelial) -> percentage of the wound bed
    """
    necrotic = tissue_distribution.get('necrotic', 0) + tissue_distribution.get('eschar', 0)
    slough = tissue_distribution.get('slough', 0)
    granulation = tissue_distribution.get('granulation', 0)
    epithelial = tissue_distribution.get('epithelial', 0)

    if necrotic > 20 or (slough > 40 and granulation < 10):
        return HEALING_PHASES[HealingPhaseName.EXTENSION]
    if 0 < granulation <= 40:
        return HEALING_PHASES[HealingPhaseName.TRANSITION]
    if epithelial >= 90:
        return HEALING_PHASES[HealingPhaseName.REMODELING]
    if granulation > 40 or epithelial > 20:
        return HEALING_PHASES[HealingPhaseName.REPAIR]
    return HEALING_PHASES[HealingPhaseName.TRANSITION]


def _recommendations(trend: HealingTrend, weekly_rate: float, latest: ProgressEntry) -> List[str]:
    recommendations: List[str] = []

    if trend == HealingTrend.DETERIORATING:
        recommendations.extend([
            'URGENT: Wound is deteriorating - review treatment plan',
            'Consider infection assessment and wound swab',
            'Evaluate patient nutrition and hydration status',
            'Review underlying conditions (diabetes, vascular disease)',
            'Consider specialist referral'
        ])
    elif trend == HealingTrend.STABLE and weekly_rate < 1:
        recommendations.extend([
            'Wound healing is stalled - consider treatment modification',
            'Assess for barriers to healing',
            'Consider advanced wound therapies',
            'Review patient compliance with treatment'
        ])
    elif trend == HealingTrend.IMPROVING:
        recommendations.extend([
            'Continue current treatment protocol',
            'Monitor for signs of infection',
            'Maintain optimal moisture balance'
        ])

    recommendations.extend(determine_healing_phase(latest.tissue_distribution).treatment_focus)
    return recommendations


def calculate_healing_rate(entries: Sequence[ProgressEntry]) -> HealingRateResult:
    """Healing progress between the first and the latest assessment"""
    if len(entries) < 2:
        return HealingRateResult(
            percent_healed=0.0,
            area_reduction=0.0,
            area_reduction_percent=0.0,
            estimated_healing_days=None,
            weekly_healing_rate=0.0,
            trend=HealingTrend.STABLE,
            recommendations=['Insufficient data - continue monitoring']
        )

    ordered = sorted(entries, key=lambda e: e.date)
    initial, latest = ordered[0], ordered[-1]

    area_reduction = initial.area_cm2 - latest.area_cm2
    if initial.area_cm2 > 0:
        area_reduction_percent = area_reduction / initial.area_cm2 * 100.0
    else:
        area_reduction_percent = 0.0
    percent_healed = max(0.0, min(100.0, area_reduction_percent))

    elapsed_days = (latest.date - initial.date).total_seconds() / 86400.0
    days = max(1, math.ceil(elapsed_days))
    weekly_rate = area_reduction / days * 7

    estimated_days: Optional[int] = None
    if weekly_rate > 0 and latest.area_cm2 > 0:
        estimated_days = math.ceil(latest.area_cm2 / weekly_rate * 7)

    if area_reduction_percent > 10:
        trend = HealingTrend.IMPROVING
    elif area_reduction_percent < -5:
        trend = HealingTrend.DETERIORATING
    else:
        trend = HealingTrend.STABLE

    logger.debug(f"Healing rate over {days} days: {weekly_rate:.2f} cm2/week ({trend.value})")

    return HealingRateResult(
        percent_healed=percent_healed,
        area_reduction=area_reduction,
        area_reduction_percent=area_reduction_percent,
        estimated_healing_days=estimated_days,
        weekly_healing_rate=weekly_rate,
        trend=trend,
        recommendations=_recommendations(trend, weekly_rate, latest)
    )


def progress_entry_from_measurement(measurement: WoundMeasurement,
                                    tissue_distribution: Optional[Dict[str, float]] = None,
                                    notes: Optional[str] = None) -> ProgressEntry:
    """
    Record a planimetry result as a progress entry

    When no tissue distribution is given, the measured granulation share is used.
    """
    distribution = dict(tissue_distribution or {})
    if 'granulation' not in distribution and measurement.granulation_percent is not None:
        distribution['granulation'] = measurement.granulation_percent

    return ProgressEntry(
        date=measurement.measured_at,
        length_cm=measurement.length_cm,
        width_cm=measurement.width_cm,
        area_cm2=measurement.area_cm2,
        tissue_distribution=distribution,
        notes=notes
    )
