"""Request/response models for the load flow calculation.

Field aliases follow the calling application's camelCase JSON; Python
code may populate models by field name as well.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from loadflow.config import settings


class _CamelModel(BaseModel):
    model_config = {"populate_by_name": True}


# ======================================================================
# Request
# ======================================================================


class PowerValue(_CamelModel):
    p: float = Field(default=0.0, alias="P")  # kW
    q: float = Field(default=0.0, alias="Q")  # kvar


class SystemData(_CamelModel):
    system_voltage: float = Field(alias="systemVoltage")  # V, line-to-line
    frequency: float = 50.0
    system_type: str = Field(default="radial", alias="systemType")
    base_kva: float = Field(alias="baseKVA")


class BusInput(_CamelModel):
    bus_id: str = Field(alias="busId")
    voltage: float  # V
    angle: float = 0.0  # degrees
    bus_type: str = Field(alias="busType", pattern="(?i)^(slack|pv|pq)$")
    power_generation: PowerValue | None = Field(default=None, alias="powerGeneration")
    power_load: PowerValue | None = Field(default=None, alias="powerLoad")


class BranchInput(_CamelModel):
    branch_id: str = Field(alias="branchId")
    from_bus: str = Field(alias="fromBus")
    to_bus: str = Field(alias="toBus")
    resistance: float  # Ω
    reactance: float  # Ω
    susceptance: float | None = None  # S, total line charging
    rating_mva: float | None = Field(default=None, alias="ratingMVA")
    tap_ratio: float = Field(default=1.0, alias="tapRatio")
    phase_shift: float = Field(default=0.0, alias="phaseShift")  # degrees
    in_service: bool = Field(default=True, alias="inService")


class LoadModels(_CamelModel):
    constant_power: float = Field(default=100.0, alias="constantPower")  # %
    constant_current: float = Field(default=0.0, alias="constantCurrent")  # %
    constant_impedance: float = Field(default=0.0, alias="constantImpedance")  # %


class ConvergenceCriteriaInput(_CamelModel):
    max_iterations: int = Field(
        default_factory=lambda: settings.default_max_iterations, alias="maxIterations"
    )
    tolerance: float = Field(default_factory=lambda: settings.default_tolerance)


class LoadFlowRequest(_CamelModel):
    system_data: SystemData = Field(alias="systemData")
    buses: list[BusInput]
    branches: list[BranchInput] = Field(default_factory=list)
    load_models: LoadModels = Field(default_factory=LoadModels, alias="loadModels")
    convergence_criteria: ConvergenceCriteriaInput = Field(
        default_factory=ConvergenceCriteriaInput, alias="convergenceCriteria"
    )


# ======================================================================
# Response
# ======================================================================


class PowerPair(_CamelModel):
    p: float = Field(alias="P")
    q: float = Field(alias="Q")


class ApparentPower(PowerPair):
    s: float = Field(alias="S")


class VoltagePhasor(_CamelModel):
    magnitude: float  # V
    angle: float  # degrees
    per_unit: float = Field(alias="perUnit")


class BusResultItem(_CamelModel):
    bus_id: str = Field(alias="busId")
    bus_type: str = Field(alias="busType")
    voltage: VoltagePhasor
    voltage_drop_from_nominal: float = Field(alias="voltageDropFromNominal")  # %
    compliance: bool
    power: PowerPair  # net injection


class BranchPowerFlow(_CamelModel):
    from_bus: ApparentPower = Field(alias="fromBus")
    to_bus: ApparentPower = Field(alias="toBus")


class BranchResultItem(_CamelModel):
    branch_id: str = Field(alias="branchId")
    from_bus: str = Field(alias="fromBus")
    to_bus: str = Field(alias="toBus")
    in_service: bool = Field(alias="inService")
    current: float  # A
    loading: float  # % of rating
    power_flow: BranchPowerFlow = Field(alias="powerFlow")
    losses: PowerPair
    flow_direction: str = Field(alias="flowDirection")
    voltage_regulation: float = Field(alias="voltageRegulation")  # %


class VoltageExtreme(_CamelModel):
    bus: str
    magnitude: float  # V


class SystemSummaryItem(_CamelModel):
    total_generation: PowerPair = Field(alias="totalGeneration")
    total_load: PowerPair = Field(alias="totalLoad")
    total_losses: PowerPair = Field(alias="totalLosses")
    min_voltage: VoltageExtreme = Field(alias="minVoltage")
    max_voltage: VoltageExtreme = Field(alias="maxVoltage")
    overloaded_branches: list[str] = Field(alias="overloadedBranches")
    voltage_limit_violations: list[str] = Field(alias="voltageLimitViolations")
    power_balance_error: PowerPair = Field(alias="powerBalanceError")
    balance_check_passed: bool = Field(alias="balanceCheckPassed")


class OutageBusViolation(_CamelModel):
    bus_id: str = Field(alias="busId")
    voltage: float  # pu
    limit_type: str = Field(alias="limitType")


class OutageThermalViolation(_CamelModel):
    branch_id: str = Field(alias="branchId")
    loading: float  # %


class ContingencyCaseItem(_CamelModel):
    branch_id: str = Field(alias="branchId")
    outcome: str
    iterations: int
    mismatch: float | None = None
    min_voltage: float | None = Field(default=None, alias="minVoltage")  # pu
    max_loading: float | None = Field(default=None, alias="maxLoading")  # %
    isolated_buses: list[str] = Field(default_factory=list, alias="isolatedBuses")
    voltage_violations: list[OutageBusViolation] = Field(
        default_factory=list, alias="voltageViolations"
    )
    thermal_violations: list[OutageThermalViolation] = Field(
        default_factory=list, alias="thermalViolations"
    )


class OutageVoltageViolations(_CamelModel):
    outage: str
    violations: list[OutageBusViolation]


class ContingencyAnalysisItem(_CamelModel):
    critical_outages: list[str] = Field(alias="criticalOutages")
    cases: list[ContingencyCaseItem]
    voltage_limit_violations: list[OutageVoltageViolations] = Field(
        alias="voltageLimitViolations"
    )
    n1_secure: bool = Field(alias="n1Secure")


class LoadFlowResponse(_CamelModel):
    converged: bool
    iterations: int
    mismatch: float  # largest final |ΔP| or |ΔQ|, pu
    reliable: bool
    diagnostics: str
    bus_results: list[BusResultItem] = Field(alias="busResults")
    branch_results: list[BranchResultItem] = Field(alias="branchResults")
    system_summary: SystemSummaryItem = Field(alias="systemSummary")
    contingency_analysis: ContingencyAnalysisItem | None = Field(
        default=None, alias="contingencyAnalysis"
    )
    recommendations: list[str] = Field(default_factory=list)
    regulation: str = "IEC 60909, IEEE C37.010 - Power System Analysis Standards"
