"""
Registered computations, one per template family.

A template's `formula` field is the key of one of these. Each computation
receives the coerced parameter map and returns raw numeric outputs; the
executor turns those into a CalculationResult.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, Union

from calcengine.models import ComputationError


@dataclass
class RawMetric:
    label: str
    value: Union[float, str]
    unit: Optional[str] = None
    decimals: int = 2


@dataclass
class RawOutput:
    primary: RawMetric
    secondary: list[RawMetric] = field(default_factory=list)
    status: str = "compliant"
    notes: list[str] = field(default_factory=list)


class Computable(Protocol):
    key: str

    def evaluate(self, params: Mapping[str, Any]) -> RawOutput: ...


def _require_positive(params: Mapping[str, Any], *names: str) -> None:
    bad = [n for n in names if params.get(n) is None or params[n] <= 0]
    if bad:
        raise ComputationError("Value must be greater than zero", bad)


class ElectricalLoadFormula:
    """
    Residential demand load: lighting by area, small-appliance circuits and
    special loads, reduced with the standard demand factors
    (first 3 kW at 100 %, up to 120 kW at 35 %, remainder at 25 %).
    """

    key = "electrical_load"

    APPLIANCE_CIRCUIT_W = 1500.0
    SERVICE_WARNING_A = 100.0
    SERVICE_LIMIT_A = 200.0

    def evaluate(self, params: Mapping[str, Any]) -> RawOutput:
        area = params["area"]
        density = params.get("lighting_density") or 32.0
        circuits = params.get("small_appliance_circuits") or 0.0
        special = params.get("special_loads") or 0.0
        voltage = params.get("voltage") or 0.0

        connected = area * density + circuits * self.APPLIANCE_CIRCUIT_W + special
        if connected <= 0:
            raise ComputationError(
                "Connected load is zero",
                ["area", "small_appliance_circuits", "special_loads"],
            )
        if voltage <= 0:
            raise ComputationError("Service voltage must be positive", ["voltage"])

        demand = min(connected, 3000.0)
        demand += max(min(connected, 120000.0) - 3000.0, 0.0) * 0.35
        demand += max(connected - 120000.0, 0.0) * 0.25
        current = demand / voltage

        status, notes = "compliant", ["NEC-SB-IE 2.2: demand factors applied"]
        if current > self.SERVICE_LIMIT_A:
            status = "non-compliant"
            notes.append(
                f"Service current {current:.1f} A exceeds {self.SERVICE_LIMIT_A:.0f} A; "
                "a three-phase service is required"
            )
        elif current > self.SERVICE_WARNING_A:
            status = "warning"
            notes.append(
                f"Service current {current:.1f} A above {self.SERVICE_WARNING_A:.0f} A; "
                "verify main breaker rating"
            )

        return RawOutput(
            primary=RawMetric("Demand load", demand, "W", decimals=0),
            secondary=[
                RawMetric("Connected load", connected, "W", decimals=0),
                RawMetric("Service current", current, "A", decimals=1),
                RawMetric("Demand factor", demand / connected * 100.0, "%", decimals=1),
            ],
            status=status,
            notes=notes,
        )


class ConcreteSlabFormula:
    """Concrete volume for a slab plus material quantities per mix strength."""

    key = "concrete_slab"

    # f'c (kg/cm2) -> cement bags (50 kg), sand m3, gravel m3, water L per m3
    MIXES = {
        "180": (7.0, 0.58, 0.85, 190.0),
        "210": (8.0, 0.52, 0.83, 180.0),
        "240": (8.8, 0.50, 0.80, 175.0),
        "280": (9.7, 0.45, 0.78, 170.0),
    }
    MIN_THICKNESS = 0.05
    RECOMMENDED_THICKNESS = 0.10

    def evaluate(self, params: Mapping[str, Any]) -> RawOutput:
        _require_positive(params, "length", "width", "thickness")
        strength = params.get("concrete_strength") or "210"
        if strength not in self.MIXES:
            raise ComputationError(f"No mix design for f'c {strength}", ["concrete_strength"])
        waste = (params.get("waste_factor") or 0.0) / 100.0

        area = params["length"] * params["width"]
        volume = area * params["thickness"] * (1.0 + waste)
        cement, sand, gravel, water = self.MIXES[strength]

        status, notes = "compliant", [f"Mix f'c = {strength} kg/cm2"]
        thickness = params["thickness"]
        if thickness < self.MIN_THICKNESS:
            status = "non-compliant"
            notes.append(f"Thickness below the {self.MIN_THICKNESS:.2f} m minimum (NEC-SE-HM)")
        elif thickness < self.RECOMMENDED_THICKNESS:
            status = "warning"
            notes.append(f"Thickness below the recommended {self.RECOMMENDED_THICKNESS:.2f} m")
        if int(strength) < 210:
            if status == "compliant":
                status = "warning"
            notes.append("f'c below 210 kg/cm2 is not allowed for structural elements")

        return RawOutput(
            primary=RawMetric("Concrete volume", volume, "m³", decimals=2),
            secondary=[
                RawMetric("Slab area", area, "m²", decimals=2),
                RawMetric("Cement", math.ceil(volume * cement), "bags", decimals=0),
                RawMetric("Sand", volume * sand, "m³", decimals=2),
                RawMetric("Gravel", volume * gravel, "m³", decimals=2),
                RawMetric("Water", volume * water, "L", decimals=0),
            ],
            status=status,
            notes=notes,
        )


class WaterDemandFormula:
    """Daily potable water demand and cistern sizing for a building."""

    key = "water_demand"

    MIN_ALLOWANCE = 150.0
    RECOMMENDED_ALLOWANCE = 200.0

    def evaluate(self, params: Mapping[str, Any]) -> RawOutput:
        _require_positive(params, "occupants")
        allowance = params.get("daily_allowance") or self.RECOMMENDED_ALLOWANCE
        storage_days = params.get("storage_days") or 1.0
        peak_factor = params.get("peak_factor") or 2.5

        daily = params["occupants"] * allowance
        cistern = daily * storage_days / 1000.0
        average_flow = daily / 86400.0

        status, notes = "compliant", ["NEC-11 cap. 16: potable water supply"]
        if allowance < self.MIN_ALLOWANCE:
            status = "non-compliant"
            notes.append(f"Allowance below {self.MIN_ALLOWANCE:.0f} L/person/day")
        elif allowance < self.RECOMMENDED_ALLOWANCE:
            status = "warning"
            notes.append(f"Allowance below the recommended {self.RECOMMENDED_ALLOWANCE:.0f} L/person/day")
        if storage_days < 1.0:
            if status == "compliant":
                status = "warning"
            notes.append("Storage covers less than one day of demand")

        return RawOutput(
            primary=RawMetric("Cistern volume", cistern, "m³", decimals=2),
            secondary=[
                RawMetric("Daily demand", daily, "L", decimals=0),
                RawMetric("Average flow", average_flow, "L/s", decimals=3),
                RawMetric("Peak flow", average_flow * peak_factor, "L/s", decimals=3),
            ],
            status=status,
            notes=notes,
        )


class MasonryWallFormula:
    """Masonry units and mortar for a wall, net of openings."""

    key = "masonry_wall"

    # units per m2, mortar m3 per m2
    UNITS = {
        "solid_brick": (40.0, 0.030),
        "block_15": (12.5, 0.012),
        "block_10": (12.5, 0.010),
    }
    CEMENT_BAGS_PER_M3_MORTAR = 7.5
    SLENDER_HEIGHT = 3.0

    def evaluate(self, params: Mapping[str, Any]) -> RawOutput:
        _require_positive(params, "wall_length", "wall_height")
        unit_type = params.get("unit_type") or "block_15"
        if unit_type not in self.UNITS:
            raise ComputationError(f"Unknown masonry unit {unit_type}", ["unit_type"])
        openings = params.get("openings_area") or 0.0
        waste = (params.get("waste_factor") or 0.0) / 100.0

        net_area = params["wall_length"] * params["wall_height"] - openings
        if net_area <= 0:
            raise ComputationError(
                "Openings leave no wall area",
                ["openings_area", "wall_length", "wall_height"],
            )
        per_m2, mortar_per_m2 = self.UNITS[unit_type]
        units = math.ceil(net_area * per_m2 * (1.0 + waste))
        mortar = net_area * mortar_per_m2 * (1.0 + waste)

        status, notes = "compliant", ["NEC-SE-MP: masonry quantities"]
        if unit_type == "block_10" and params["wall_height"] > self.SLENDER_HEIGHT:
            status = "warning"
            notes.append(
                f"10 cm blocks above {self.SLENDER_HEIGHT:.1f} m need intermediate confinement"
            )

        return RawOutput(
            primary=RawMetric("Masonry units", units, "u", decimals=0),
            secondary=[
                RawMetric("Net wall area", net_area, "m²", decimals=2),
                RawMetric("Mortar", mortar, "m³", decimals=3),
                RawMetric(
                    "Mortar cement",
                    math.ceil(mortar * self.CEMENT_BAGS_PER_M3_MORTAR),
                    "bags",
                    decimals=0,
                ),
            ],
            status=status,
            notes=notes,
        )


FORMULAS: dict[str, Computable] = {}


def register_formula(formula: Computable) -> Computable:
    if formula.key in FORMULAS:
        raise ValueError(f"Formula '{formula.key}' is already registered.")
    FORMULAS[formula.key] = formula
    return formula


def get_formula(key: str) -> Optional[Computable]:
    return FORMULAS.get(key)


for _formula in (
    ElectricalLoadFormula(),
    ConcreteSlabFormula(),
    WaterDemandFormula(),
    MasonryWallFormula(),
):
    register_formula(_formula)
