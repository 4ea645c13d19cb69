from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionPolicy:
    """Retention thresholds applied by the lazy pruning passes."""

    max_age_days: int = 30
    max_orders: int = 100
    size_threshold_mb: float = 8.0
    sweep_keep_days: int = 90
    document_max_age_days: int = 30


@dataclass(frozen=True)
class Settings:
    db_path: Path
    log_level: str = "INFO"
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)


def default_db_path() -> Path:
    # Fixed, working-directory-local database location.
    return Path("db") / "safeprag.db"


def retention_from_dict(raw, base: RetentionPolicy | None = None) -> RetentionPolicy:
    """Merge a persisted ``retention`` mapping onto ``base``.

    Unknown keys and values that cannot be coerced are ignored with a warning,
    so a damaged settings record never blocks the pruning passes.
    """
    policy = base or RetentionPolicy()
    if not isinstance(raw, dict):
        return policy

    overrides = {}
    for f in fields(RetentionPolicy):
        if f.name not in raw:
            continue
        caster = float if f.name == "size_threshold_mb" else int
        try:
            value = caster(raw[f.name])
        except (TypeError, ValueError):
            logger.warning("Valor de retenção inválido para %s: %r", f.name, raw[f.name])
            continue
        if value <= 0:
            logger.warning("Valor de retenção ignorado para %s: %r", f.name, value)
            continue
        overrides[f.name] = value
    return replace(policy, **overrides)
