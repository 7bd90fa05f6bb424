"""
API method manifest.

The manifest is a static table of the Actual API methods this server can
call: name, ordered parameters, return description and category. It is
generated offline from the Actual API type declarations and shipped as
manifest.json; it is loaded once and never modified.
"""

import json
from enum import Enum
from functools import lru_cache
from importlib import resources
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class MethodCategory(str, Enum):
    """Manifest method categories."""
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


class MethodParam(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str = Field(..., description="Free-text type signature")
    required: bool
    description: str


class MethodReturns(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    description: str


class MethodDescriptor(BaseModel):
    """One callable API method. Parameter order is the positional order."""
    model_config = ConfigDict(frozen=True)

    name: str
    category: MethodCategory
    description: str
    params: Tuple[MethodParam, ...] = ()
    returns: MethodReturns

    @property
    def param_names(self) -> List[str]:
        return [p.name for p in self.params]


@lru_cache(maxsize=None)
def load_manifest() -> Tuple[MethodDescriptor, ...]:
    """Load the packaged manifest. Method names must be unique."""
    raw = json.loads(
        resources.files(__package__).joinpath("manifest.json").read_text(encoding="utf-8")
    )
    methods = tuple(MethodDescriptor.model_validate(item) for item in raw)

    seen = set()
    for method in methods:
        if method.name in seen:
            raise ValueError(f"Duplicate method in manifest: {method.name}")
        seen.add(method.name)
    return methods


@lru_cache(maxsize=None)
def _methods_by_name() -> Dict[str, MethodDescriptor]:
    return {m.name: m for m in load_manifest()}


def get_method(name: str) -> Optional[MethodDescriptor]:
    """Look up a method by exact name."""
    return _methods_by_name().get(name)


def get_methods_by_category(category: MethodCategory) -> List[MethodDescriptor]:
    return [m for m in load_manifest() if m.category == category]


def get_categories() -> List[MethodCategory]:
    return list(MethodCategory)


def get_method_summary() -> Dict[str, int]:
    """Number of methods per category, in category order."""
    return {c.value: len(get_methods_by_category(c)) for c in MethodCategory}
