from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Dict, Any, Union, Literal


FeedBasis = Literal["per kg DS", "per kg product"]
FeedCategory = Literal["roughage", "concentrate", "byproduct", "mineral"]
BalanceStatus = Literal["ok", "warning", "deficient"]
SaturationStatus = Literal["ok", "warning", "exceeded"]


# Animal input models

class AnimalProfile(BaseModel):
    """Reference animal class with default targets"""
    id: Optional[str] = Field(None, description="Profile identifier")
    name: str = Field(..., min_length=1, max_length=100, description="Profile name, also the narrative lookup key")
    weight_kg: float = Field(..., gt=0, description="Live weight in kg")
    vem_target: float = Field(..., gt=0, description="Default VEM requirement per day")
    dve_target_grams: float = Field(..., gt=0, description="Default DVE requirement in g/day")
    max_bds_kg: float = Field(..., gt=0, description="Dry matter intake ceiling in kg DS/day")
    description: Optional[str] = Field(None, description="Profile description")
    notes: Optional[str] = Field(None, description="Free-form notes")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """Validate name is not empty after stripping"""
        v = v.strip()
        if not v:
            raise ValueError('Name cannot be empty')
        return v


class LactationState(BaseModel):
    parity: int = Field(1, ge=1, description="Lactation number (1 = first lactation)")
    days_in_milk: float = Field(0, ge=0, description="Days since calving")
    days_pregnant: float = Field(0, ge=0, description="Days pregnant, bounded by the coefficient set")
    is_lactating: bool = Field(True, description="Whether the animal is in milk")
    is_grazing: bool = Field(False, description="Whether the animal is grazing")


class MilkProductionRecord(BaseModel):
    """Milk recording (MPR) data for one animal or group"""
    milk_kg: float = Field(..., ge=0, description="Milk yield in kg/day")
    fat_percent: float = Field(..., ge=0, le=100, description="Milk fat %")
    protein_percent: float = Field(..., ge=0, le=100, description="Milk protein %")
    ureum: Optional[float] = Field(None, ge=0, description="Milk urea in mg/100 ml")


# Feed models

class Feed(BaseModel):
    name: str = Field(..., min_length=1, description="Feed identifier")
    display_name: Optional[str] = Field(None, description="Name shown in reports")
    vem_per_unit: float = Field(..., description="VEM per kg DS")
    dve_per_unit: float = Field(..., description="DVE in g per kg DS")
    oeb_per_unit: float = Field(0.0, description="OEB in g per kg DS")
    ca_per_unit: float = Field(0.0, ge=0, description="Calcium in g per kg DS")
    p_per_unit: float = Field(0.0, ge=0, description="Phosphorus in g per kg DS")
    sw_per_kg_ds: float = Field(0.0, ge=0, description="Structure value per kg DS")
    vw_per_kg_ds: Optional[float] = Field(None, ge=0, description="Filling value per kg DS")
    default_ds_percent: float = Field(100.0, ge=0, le=100, description="Default dry matter %")
    basis: FeedBasis = Field("per kg DS", description="Unit the fed amount is entered in")
    category: Optional[FeedCategory] = Field(None, description="Feed category")

    model_config = ConfigDict(frozen=True)

    @property
    def label(self):
        return self.display_name or self.name


class FeedInput(BaseModel):
    """A feed with the amount fed per animal per day"""
    feed: Feed
    amount_kg: float = Field(..., ge=0, description="Amount in the feed's basis unit (kg DS or kg product)")
    ds_percent: Optional[float] = Field(None, ge=0, le=100, description="Dry matter %, defaults to the feed's value")


class ParsedFeedData(BaseModel):
    """Typed output of the lab report extraction service"""
    product_name: str = Field(..., min_length=1, description="Product name on the lab report")
    product_type: str = Field("", description="Cut or harvest, e.g. '1e snede'")
    vem: float = Field(..., description="VEM per kg DS")
    dve: float = Field(..., description="DVE in g per kg DS")
    oeb: float = Field(..., description="OEB in g per kg DS")
    ds_percent: float = Field(..., ge=0, le=100, description="Dry matter %")
    sw: float = Field(..., ge=0, description="Structure value per kg DS")
    raw_protein: Optional[float] = Field(None, description="Crude protein in g per kg DS")
    raw_fiber: Optional[float] = Field(None, description="Crude fibre in g per kg DS")
    sugar: Optional[float] = Field(None, description="Sugar in g per kg DS")
    starch: Optional[float] = Field(None, description="Starch in g per kg DS")


# Result models

class NutrientSupply(BaseModel):
    dry_matter_kg: float = 0.0
    vem: float = 0.0
    dve_grams: float = 0.0
    oeb_grams: float = 0.0
    ca_grams: float = 0.0
    p_grams: float = 0.0


class FeedContribution(BaseModel):
    feed_name: str
    display_name: str
    category: FeedCategory
    basis: FeedBasis
    amount_kg: float
    ds_percent: float
    dry_matter_kg: float
    amount_kg_product: float
    nutrient_multiplier: float
    supply: NutrientSupply
    sw_total: float
    vw_total: float
    vem_per_kg_ds: float = Field(..., description="Resolved feed density, kept for zero amounts")
    dve_per_kg_ds: float
    oeb_per_kg_ds: float
    ca_per_kg_ds: float
    p_per_kg_ds: float
    sw_per_kg_ds: float
    vw_per_kg_ds: float


class RequirementResult(BaseModel):
    strategy: str = Field(..., description="Requirement strategy that produced this result")
    vem_total: float
    dve_total: float
    vem_components: Dict[str, float] = Field(default_factory=dict)
    dve_components: Dict[str, float] = Field(default_factory=dict)
    fpcm: Optional[float] = None
    protein_yield_grams: Optional[float] = None
    constants_version: str


class MineralRequirement(BaseModel):
    ca_grams: float
    p_grams: float


class NutrientBalance(BaseModel):
    parameter: str
    requirement: float
    supply: float
    balance: float
    status: BalanceStatus
    unit: str
    percent_of_requirement: Optional[float] = None


class StructureValueResult(BaseModel):
    total_sw: float
    total_ds_kg: float
    sw_per_kg_ds: float
    requirement: float
    status: BalanceStatus
    message: str


class VOCResult(BaseModel):
    lactation_age: float
    maturity: float
    lactation_factor: float
    pregnancy_factor: float
    voc_vw: float = Field(..., description="Intake capacity in filling units")
    voc_kg_ds: float = Field(..., description="Intake capacity in kg DS")
    total_vw: float
    saturation_percent: float
    status: SaturationStatus
    message: str


class SubstitutionResult(BaseModel):
    concentrate_kg_ds: float
    roughage_kg_ds: float
    max_roughage_intake: float
    displacement: float
    adjusted_roughage_intake: float
    substitution_rate: float
    is_overfeeding: bool
    message: str


class UreumStatus(BaseModel):
    value: float
    status: Literal["low", "ok", "high"]
    message: str


class FeedQualityAssessment(BaseModel):
    feed_type: Optional[str] = None
    score: Literal["excellent", "good", "average", "poor", "unknown"]
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    impact_estimate: Optional[str] = None


class CalculationResult(BaseModel):
    requirement: RequirementResult
    total_supply: NutrientSupply
    feed_contributions: List[FeedContribution] = Field(default_factory=list)
    balances: List[NutrientBalance]
    performance_prediction: str
    is_target_met: bool
    structure_value: StructureValueResult
    voc_result: VOCResult
    substitution_result: SubstitutionResult
    ureum_status: Optional[UreumStatus] = None
    warnings: List[Dict[str, Any]] = Field(default_factory=list)
    constants_version: str


# Audit models

class CalculationStep(BaseModel):
    """One explainable number: formula, inputs, substituted calculation, rounded result"""
    name: str
    formula: str
    inputs: Dict[str, Union[float, int, str]] = Field(default_factory=dict)
    calculation: str
    result: float
    unit: str
    source: str

    model_config = ConfigDict(frozen=True)


class FeedAudit(BaseModel):
    feed_name: str
    display_name: str
    basis: FeedBasis
    amount_kg_ds: float
    amount_kg_product: float
    ds_percent: float
    contributions: Dict[str, CalculationStep]


class BalanceAudit(BaseModel):
    balance: NutrientBalance
    calculation: CalculationStep


class AuditableCalculationResult(BaseModel):
    generated_at: Optional[str] = Field(None, description="Caller supplied timestamp, ISO 8601")
    constants_version: str
    strategy: str
    inputs: Dict[str, Any]
    requirements: Dict[str, Dict[str, CalculationStep]]
    supply_feeds: List[FeedAudit] = Field(default_factory=list)
    supply_totals: Dict[str, CalculationStep]
    balances: List[BalanceAudit]
    summary: Dict[str, Any]
    warnings: List[Dict[str, Any]] = Field(default_factory=list)
    open_discrepancies: List[str] = Field(default_factory=list)


# Gap analysis models

SwSafetyStatus = Literal["safe", "warning", "danger"]
LimitingNutrient = Literal["VEM", "DVE", "none"]


class BaseRationDensity(BaseModel):
    """Nutrient density of a roughage base mix, per kg DS"""
    vem_per_kg_ds: float = Field(..., ge=0, description="VEM per kg DS")
    dve_per_kg_ds: float = Field(..., ge=0, description="DVE in g per kg DS")
    oeb_per_kg_ds: float = Field(0.0, description="OEB in g per kg DS")
    sw_per_kg_ds: float = Field(0.0, ge=0, description="Structure value per kg DS")
    vw_per_kg_ds: float = Field(1.0, ge=0, description="Filling value per kg DS")


class GroupRequirements(BaseModel):
    """Average daily requirement of one herd group, per cow"""
    vem_per_cow: float = Field(..., ge=0)
    dve_per_cow: float = Field(..., ge=0, description="g/day")
    oeb_per_cow: float = Field(0.0, description="g/day")


class ConcentrateDensity(BaseModel):
    """Top-up concentrate, per kg DS"""
    vem: float = Field(1000.0, gt=0, description="VEM per kg DS")
    dve: float = Field(100.0, gt=0, description="DVE in g per kg DS")
    sw: float = Field(0.0, ge=0, description="Structure value per kg DS")
    price_per_ton_ds: float = Field(350.0, ge=0, description="Price per ton DS")

    model_config = ConfigDict(frozen=True)


class BaseMilkSupport(BaseModel):
    total_vem: float
    total_dve: float
    total_sw: float
    maintenance_vem: float
    maintenance_dve: float
    production_vem: float
    production_dve: float
    milk_support_kg: float = Field(..., description="Milk the base mix supports above maintenance")
    sw_per_kg_ds: float
    is_sw_safe: bool
    sw_status: SwSafetyStatus


class GapAnalysisResult(BaseModel):
    # Base mix before substitution
    base_intake_kg_ds: float
    base_vem: float
    base_dve: float
    base_oeb: float
    base_sw: float
    base_milk_support_kg: float
    target_milk_kg: float

    # Gap
    gap_milk_kg: float
    gap_vem: float
    gap_dve: float
    gap_oeb: float

    # Concentrate top-up, rounded to 0.1 kg DS
    concentrate_kg_ds: float
    concentrate_vem: float
    concentrate_dve: float
    concentrate_sw: float

    # Substitution
    roughage_displacement_kg_ds: float
    adjusted_roughage_intake_kg_ds: float
    adjusted_roughage_vem: float
    adjusted_roughage_dve: float
    adjusted_roughage_sw: float

    # After substitution
    final_intake_kg_ds: float
    final_vem: float
    final_dve: float
    final_sw: float
    final_sw_per_kg_ds: float

    is_sw_safe: bool
    sw_status: SwSafetyStatus
    sw_deficit: float = Field(..., description="SW per kg DS missing to the safe level")
    is_deficit: bool
    limiting_nutrient: LimitingNutrient
    acidosis_risk: bool
    acidosis_warning: Optional[str] = None
    adjustment_suggestion: Optional[str] = None


class ConcentrateCost(BaseModel):
    daily_cost_per_cow: float
    daily_cost_total: float
    monthly_cost_total: float
    annual_cost_total: float
