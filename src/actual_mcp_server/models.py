"""
Pydantic models for MCP tool input validation.

Tool arguments are validated here before anything reaches the Actual API.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# COMMON MODELS
# ============================================================================

class BudgetSelectorInput(BaseModel):
    """Base model with an optional budget selector."""
    model_config = ConfigDict(str_strip_whitespace=True)

    budget_id: Optional[str] = Field(
        default=None,
        description="Budget ID, name or sync ID to auto-load. If omitted, uses the currently loaded budget.",
    )


# ============================================================================
# METHOD DISCOVERY
# ============================================================================

class CategoryFilter(str, Enum):
    """Manifest category filter for list_api_methods."""
    ALL = "all"
    LIFECYCLE = "lifecycle"
    BUDGET = "budget"
    TRANSACTIONS = "transactions"
    ACCOUNTS = "accounts"
    CATEGORIES = "categories"
    PAYEES = "payees"
    RULES = "rules"
    SCHEDULES = "schedules"
    QUERY = "query"
    BANK_SYNC = "bank-sync"


class ListMethodsInput(BaseModel):
    """Input for list_api_methods."""
    category: CategoryFilter = Field(default=CategoryFilter.ALL, description="Category to list")
    summary_only: bool = Field(default=False, description="Only return counts per category")


class CallMethodInput(BaseModel):
    """Input for call_api_method."""
    model_config = ConfigDict(str_strip_whitespace=True)

    method: str = Field(..., min_length=1, description="API method name, e.g. 'getAccounts'")
    params: Dict[str, Any] = Field(default_factory=dict, description="Named method parameters")


# ============================================================================
# QUERIES
# ============================================================================

Expression = Union[Dict[str, Any], str]


class ExecuteQueryInput(BudgetSelectorInput):
    """Input for execute_aql_query."""
    table: str = Field(..., min_length=1, description="Table to query, e.g. 'transactions'")
    tableOptions: Optional[Dict[str, Any]] = Field(default=None, description="Table options, e.g. {'splits': 'grouped'}")
    filterExpressions: Optional[List[Dict[str, Any]]] = Field(default=None, description="Filter conditions")
    selectExpressions: Optional[List[Expression]] = Field(default=None, description="Fields to select")
    groupExpressions: Optional[List[Expression]] = Field(default=None, description="Fields to group by")
    orderExpressions: Optional[List[Expression]] = Field(default=None, description="Sort order")
    limit: Optional[int] = Field(default=None, ge=0, description="Max rows to return")
    offset: Optional[int] = Field(default=None, ge=0, description="Rows to skip")
    rawMode: bool = Field(default=False, description="Return raw DB values")
    withDead: bool = Field(default=False, description="Include soft-deleted records")


class SchemaSection(str, Enum):
    """Sections of the AQL schema."""
    ALL = "all"
    TABLES = "tables"
    OPERATORS = "operators"
    FUNCTIONS = "functions"


class GetSchemaInput(BaseModel):
    """Input for get_aql_schema."""
    model_config = ConfigDict(str_strip_whitespace=True)

    section: SchemaSection = Field(default=SchemaSection.ALL, description="Section to return")
    table: Optional[str] = Field(default=None, description="Only this table (tables/all sections)")


# ============================================================================
# RULES
# ============================================================================

class RulesFormat(str, Enum):
    DSL = "dsl"
    JSON = "json"


class RuleStage(str, Enum):
    """Rule stage filter. 'run' is the normal stage (stored as null)."""
    PRE = "pre"
    RUN = "run"
    POST = "post"
    ALL = "all"


class GetRulesInput(BudgetSelectorInput):
    """Input for get_rules."""
    format: RulesFormat = Field(default=RulesFormat.DSL, description="'dsl' (compact) or 'json' (full data)")
    stage: RuleStage = Field(default=RuleStage.ALL, description="Filter by rule stage")
    resolve_names: bool = Field(default=True, description="Show entity names instead of UUIDs")
