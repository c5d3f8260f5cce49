from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from xlate_core.db.schema import initialize_database
from xlate_core.site.config import PricingConfig
from xlate_core.translation.types import BatchMeta, BatchRequest

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class UsageSummary:
    model: str
    batches: int
    input_tokens: int
    output_tokens: int
    total_tokens: int
    total_cost: float


def _utc_now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def _cost(tokens: int, rate_per_million: float) -> float:
    if tokens <= 0:
        return 0.0
    return (tokens / 1_000_000) * rate_per_million


class TokenUsageRecorder:
    """Writes one ``xlate_token_batches`` row per successful provider round trip."""

    def __init__(self, *, db_path: Path, pricing: PricingConfig | None = None) -> None:
        self.db_path = Path(db_path)
        self.pricing = pricing or PricingConfig()

    def __call__(self, request: BatchRequest, meta: BatchMeta, batch_size: int) -> None:
        usage = meta.usage_tokens
        if usage is None or usage.is_empty():
            return

        options = request.options
        input_tokens = usage.prompt
        cached_tokens = options.cached_input_tokens
        output_tokens = usage.completion
        total_tokens = usage.total or (input_tokens + cached_tokens + output_tokens)

        input_cost = _cost(input_tokens, self.pricing.input_per_million)
        cached_cost = _cost(cached_tokens, self.pricing.cached_input_per_million)
        output_cost = _cost(output_tokens, self.pricing.output_per_million)
        if options.input_cost:
            input_cost = float(options.input_cost)
        if options.cached_input_cost:
            cached_cost = float(options.cached_input_cost)
        if options.output_cost:
            output_cost = float(options.output_cost)

        payload = {
            "timecreated": _utc_now_iso(),
            "lang": request.target_lang,
            "batchsize": batch_size,
            "model": meta.model,
            "input_tokens": input_tokens,
            "cached_input_tokens": cached_tokens,
            "output_tokens": output_tokens,
            "total_tokens": total_tokens,
            "input_cost": input_cost,
            "cached_input_cost": cached_cost,
            "output_cost": output_cost,
            "total_cost": input_cost + cached_cost + output_cost,
            "response_ms": meta.elapsed_ms,
            "job_id": options.job_id,
        }

        try:
            engine = initialize_database(self.db_path)
            try:
                with engine.begin() as connection:
                    connection.execute(
                        text(
                            """
                            INSERT INTO xlate_token_batches(
                                timecreated, lang, batchsize, model,
                                input_tokens, cached_input_tokens, output_tokens, total_tokens,
                                input_cost, cached_input_cost, output_cost, total_cost,
                                response_ms, job_id
                            ) VALUES (
                                :timecreated, :lang, :batchsize, :model,
                                :input_tokens, :cached_input_tokens, :output_tokens, :total_tokens,
                                :input_cost, :cached_input_cost, :output_cost, :total_cost,
                                :response_ms, :job_id
                            )
                            """
                        ),
                        payload,
                    )
            finally:
                engine.dispose()
        except SQLAlchemyError as exc:
            logger.warning("Failed to log batch token usage: %s", exc)


def summarize_usage(*, db_path: Path) -> list[UsageSummary]:
    engine = initialize_database(Path(db_path))
    try:
        with engine.connect() as connection:
            rows = connection.execute(
                text(
                    """
                    SELECT
                        model,
                        COUNT(*) AS batches,
                        COALESCE(SUM(input_tokens), 0),
                        COALESCE(SUM(output_tokens), 0),
                        COALESCE(SUM(total_tokens), 0),
                        COALESCE(SUM(total_cost), 0.0)
                    FROM xlate_token_batches
                    GROUP BY model
                    ORDER BY model
                    """
                )
            ).all()
    finally:
        engine.dispose()

    return [
        UsageSummary(
            model=str(row[0]),
            batches=int(row[1]),
            input_tokens=int(row[2]),
            output_tokens=int(row[3]),
            total_tokens=int(row[4]),
            total_cost=float(row[5]),
        )
        for row in rows
    ]
