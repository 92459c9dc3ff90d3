# buildsched/sequences.py
"""
Typical residential/commercial trade sequence, used for advisory checks only.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class TradePhase(BaseModel):
    keywords: List[str]
    after: List[str] = Field(default_factory=list)
    before: List[str] = Field(default_factory=list)
    typical_duration: Optional[int] = None
    requires_inspection: bool = False


CONSTRUCTION_SEQUENCES: Dict[str, TradePhase] = {
    "foundation": TradePhase(
        before=["framing", "roofing", "rough_electrical", "rough_plumbing", "drywall"],
        typical_duration=7,
        requires_inspection=True,
        keywords=["foundation", "footing", "slab", "basement", "concrete pour"],
    ),
    "framing": TradePhase(
        after=["foundation"],
        before=["roofing", "rough_electrical", "rough_plumbing", "insulation", "drywall"],
        typical_duration=14,
        requires_inspection=True,
        keywords=["framing", "frame", "studs", "joists", "trusses", "structural"],
    ),
    "roofing": TradePhase(
        after=["framing"],
        before=["drywall", "insulation", "interior"],
        typical_duration=5,
        keywords=["roof", "roofing", "shingles", "flashing"],
    ),
    "rough_electrical": TradePhase(
        after=["framing"],
        before=["drywall", "insulation"],
        typical_duration=5,
        requires_inspection=True,
        keywords=["electrical rough", "rough electric", "wiring", "rough-in electric"],
    ),
    "rough_plumbing": TradePhase(
        after=["framing"],
        before=["drywall", "insulation"],
        typical_duration=5,
        requires_inspection=True,
        keywords=["plumbing rough", "rough plumb", "pipes", "rough-in plumb"],
    ),
    "hvac_rough": TradePhase(
        after=["framing"],
        before=["drywall", "insulation"],
        typical_duration=5,
        keywords=["hvac rough", "ductwork", "rough-in hvac", "heating"],
    ),
    "insulation": TradePhase(
        after=["framing", "rough_electrical", "rough_plumbing", "hvac_rough", "roofing"],
        before=["drywall"],
        typical_duration=3,
        requires_inspection=True,
        keywords=["insulation", "insulate"],
    ),
    "drywall": TradePhase(
        after=["framing", "rough_electrical", "rough_plumbing", "hvac_rough", "insulation", "roofing"],
        before=["paint", "flooring", "trim", "cabinets"],
        typical_duration=10,
        keywords=["drywall", "sheetrock", "wallboard"],
    ),
    "paint": TradePhase(
        after=["drywall"],
        before=["flooring", "cabinets", "fixtures", "trim"],
        typical_duration=5,
        keywords=["paint", "painting", "primer"],
    ),
    "flooring": TradePhase(
        after=["drywall", "paint"],
        typical_duration=5,
        keywords=["flooring", "floor", "hardwood", "tile", "carpet", "vinyl"],
    ),
    "cabinets": TradePhase(
        after=["drywall", "paint"],
        before=["countertops", "fixtures"],
        typical_duration=3,
        keywords=["cabinet", "cabinetry"],
    ),
    "countertops": TradePhase(
        after=["cabinets"],
        before=["fixtures"],
        typical_duration=2,
        keywords=["countertop", "counter top", "granite", "quartz"],
    ),
    "trim": TradePhase(
        after=["drywall", "paint", "flooring"],
        typical_duration=5,
        keywords=["trim", "baseboard", "molding", "crown"],
    ),
    "fixtures": TradePhase(
        after=["paint", "flooring", "countertops"],
        typical_duration=3,
        keywords=["fixture", "faucet", "light fixture", "appliance"],
    ),
    "final_electrical": TradePhase(
        after=["paint", "drywall"],
        typical_duration=2,
        requires_inspection=True,
        keywords=["electrical final", "final electric", "switches", "outlets"],
    ),
    "final_plumbing": TradePhase(
        after=["paint", "drywall", "countertops"],
        typical_duration=2,
        requires_inspection=True,
        keywords=["plumbing final", "final plumb"],
    ),
}


def identify_trade(description: str) -> Optional[str]:
    """First trade whose keywords appear in the description, in table order."""
    lowered = (description or "").lower()
    for trade, config in CONSTRUCTION_SEQUENCES.items():
        if any(keyword in lowered for keyword in config.keywords):
            return trade
    return None


def requires_inspection(description: str) -> bool:
    trade = identify_trade(description)
    return bool(trade and CONSTRUCTION_SEQUENCES[trade].requires_inspection)


def typical_duration(description: str) -> Optional[int]:
    trade = identify_trade(description)
    if trade is None:
        return None
    return CONSTRUCTION_SEQUENCES[trade].typical_duration
