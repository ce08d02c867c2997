"""Configuration API routes — Work item vocabulary and importable fields."""

from fastapi import APIRouter

from backlog_import.core.type_config import (
    DEFAULT_STATUS,
    DEFAULT_TYPE,
    MAX_PRIORITY,
    MIN_PRIORITY,
    STATUS_RULES,
    TARGET_FIELDS,
    WORK_ITEM_TYPES,
)

router = APIRouter()


# ─── Type Configuration ────────────────────────────────────────

@router.get("/work-item-types")
async def get_work_item_types():
    """
    Get the work item vocabulary.

    Returns the registered types (top of the hierarchy first), the statuses,
    the defaults an import falls back to, and the priority range.
    """
    return {
        "types": {
            t.value: {
                "label": cfg.label,
                "plural_label": cfg.plural_label,
                "level": cfg.level,
                "keywords": list(cfg.keywords),
            }
            for t, cfg in sorted(WORK_ITEM_TYPES.items(), key=lambda kv: kv[1].level)
        },
        "statuses": [DEFAULT_STATUS.value] + [rule.status.value for rule in STATUS_RULES],
        "default_type": DEFAULT_TYPE.value,
        "default_status": DEFAULT_STATUS.value,
        "priority_range": {"min": MIN_PRIORITY, "max": MAX_PRIORITY},
    }


# ─── Target Fields ─────────────────────────────────────────────

@router.get("/target-fields")
async def get_target_fields():
    """
    Get the fields an export column can be mapped onto.

    Used by the import wizard to build its mapping dropdowns.
    """
    return [
        {
            "field": d.field.value,
            "label": d.label,
            "required": d.required,
            "aliases": list(d.aliases),
        }
        for d in TARGET_FIELDS
    ]
