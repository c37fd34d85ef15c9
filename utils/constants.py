"""Shared constants for the Craft Architect project."""

from __future__ import annotations

# Recursion backstop for recipe expansion
MAX_RECIPE_DEPTH = 20

# Item ids 1..19 are the elemental shards, crystals and clusters
CRYSTAL_ID_MAX = 19
NON_HQ_NAME_MARKERS = ("crystal", "shard", "cluster", "aethersand")

# Outlier cut-off used when computing the baseline for the mode price
MODE_OUTLIER_FACTOR = 10
MODE_FALLBACK_LISTINGS = 3

DEFAULT_MAX_PRICE_MULTIPLIER = 2.5
DEFAULT_SPLIT_SAVINGS_THRESHOLD = 0.05

# Extra unused listings shown per world as alternatives
ADDITIONAL_LISTING_OPTIONS = 2

COMPANY_WORKSHOP_JOB = "Company Workshop"

JOB_NAMES = {
    1: "Carpenter",
    2: "Blacksmith",
    3: "Armorer",
    4: "Goldsmith",
    5: "Leatherworker",
    6: "Weaver",
    7: "Alchemist",
    8: "Culinarian",
}

NA_DATA_CENTERS = ["Aether", "Primal", "Crystal", "Dynamis"]

VENDOR_WORLD_NAME = "Vendor"
GENERIC_VENDOR_NAME = "Material Supplier"
GENERIC_VENDOR_LOCATION = "Any"


def job_name(job_id: int) -> str:
    """Return the crafting job name for a job id."""
    return JOB_NAMES.get(job_id, "Unknown")


__all__ = [
    "MAX_RECIPE_DEPTH",
    "CRYSTAL_ID_MAX",
    "NON_HQ_NAME_MARKERS",
    "MODE_OUTLIER_FACTOR",
    "MODE_FALLBACK_LISTINGS",
    "DEFAULT_MAX_PRICE_MULTIPLIER",
    "DEFAULT_SPLIT_SAVINGS_THRESHOLD",
    "ADDITIONAL_LISTING_OPTIONS",
    "COMPANY_WORKSHOP_JOB",
    "JOB_NAMES",
    "NA_DATA_CENTERS",
    "VENDOR_WORLD_NAME",
    "GENERIC_VENDOR_NAME",
    "GENERIC_VENDOR_LOCATION",
    "job_name",
]
