"""
End-to-end demo of the clinical records core.

This script walks through:
1. Configuration loading and validation
2. Resolving edit links (existing card, dangling id, no id)
3. Saving a card and recording measurements through the editor
4. Aggregating a patient's ROM/MMT history and classifying trends

Run with: uv run python run_demo.py
"""

import asyncio
from datetime import UTC, date, datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.local_store import build_record_store
from clinical.config import get_config, print_config_summary, validate_config
from clinical.domain.errors import ValidationError
from clinical.domain.models import EntityKind, MeasurementType, Side
from clinical.observability import configure_logging
from clinical.services.measurement_history import MeasurementHistoryAggregator
from clinical.services.record_editor import RecordEditor
from clinical.services.record_resolver import RecordResolver, form_session
from clinical.services.trend_analysis import (
    PatientTrendService,
    TrendAnalyzer,
    TrendDirection,
    get_trend_config,
)

console = Console()

PATIENT_ID = "P1"

TREND_STYLES = {
    TrendDirection.IMPROVING: "[green]improving[/green]",
    TrendDirection.WORSENING: "[red]worsening[/red]",
    TrendDirection.STABLE: "[yellow]stable[/yellow]",
    TrendDirection.INSUFFICIENT_DATA: "[dim]-[/dim]",
}

SEED_MEASUREMENTS = [
    (MeasurementType.ROM, "knee", Side.RIGHT, 80, datetime(2024, 1, 1, tzinfo=UTC)),
    (MeasurementType.ROM, "knee", Side.RIGHT, 85, datetime(2024, 2, 1, tzinfo=UTC)),
    (MeasurementType.ROM, "knee", Side.RIGHT, 95, datetime(2024, 3, 1, tzinfo=UTC)),
    (MeasurementType.ROM, "shoulder", Side.LEFT, 120, datetime(2024, 1, 15, tzinfo=UTC)),
    (MeasurementType.ROM, "shoulder", Side.LEFT, 118, datetime(2024, 2, 15, tzinfo=UTC)),
    (MeasurementType.MMT, "quadriceps", Side.RIGHT, 3, datetime(2024, 1, 1, tzinfo=UTC)),
    (MeasurementType.MMT, "quadriceps", Side.RIGHT, 5, datetime(2024, 2, 1, tzinfo=UTC)),
    (MeasurementType.MMT, "deltoid", Side.LEFT, 4, datetime(2024, 2, 1, tzinfo=UTC)),
]


async def demo_resolution(editor: RecordEditor, resolver: RecordResolver) -> None:
    console.print(Panel("Record resolution", style="bold blue"))

    card = await editor.save_insurance_card(
        PATIENT_ID,
        {
            "policy_number": "DN4-0123-45678-90123",
            "prefix_code": "DN",
            "coverage_percent": 80,
            "copay_rate": 20,
            "valid_from": date(2024, 1, 1),
            "valid_to": date(2026, 12, 31),
        },
    )

    for label, record_id in [("existing card", card.id), ("dangling id", "missing"), ("no id", None)]:
        async with form_session(resolver, record_id) as session:
            console.print(f"{label:>15}: {session.state.status.value}")

    try:
        await editor.save_insurance_card(PATIENT_ID, {"policy_number": "bad", "prefix_code": "ZZ"})
    except ValidationError as e:
        console.print(f"[red]rejected invalid card:[/red] {len(e.errors)} problem(s)")


async def demo_trends(editor: RecordEditor, service: PatientTrendService) -> None:
    console.print(Panel("Measurement trends", style="bold blue"))

    for measurement_type, target, side, value, recorded_at in SEED_MEASUREMENTS:
        await editor.record_measurement(
            PATIENT_ID,
            {
                "type": measurement_type,
                "target": target,
                "side": side,
                "value": value,
                "recorded_at": recorded_at,
                "recorded_by": "therapist-1",
            },
        )

    table = Table(title=f"Trends for patient {PATIENT_ID}")
    table.add_column("Type")
    table.add_column("Target")
    table.add_column("Side")
    table.add_column("Readings", justify="right")
    table.add_column("Latest", justify="right")
    table.add_column("Delta", justify="right")
    table.add_column("Trend")

    for trending in await service.patient_trends(PATIENT_ID):
        result = trending.trend
        table.add_row(
            trending.type.value,
            trending.target,
            trending.side.value,
            str(len(trending.data_points)),
            f"{trending.current:g}" if trending.current is not None else "-",
            f"{result.delta:+g}" if result.delta is not None else "-",
            TREND_STYLES[result.direction],
        )

    console.print(table)


async def main() -> None:
    validate_config()
    print_config_summary()

    config = get_config()
    configure_logging(config.logging)

    store = build_record_store(config.store)
    editor = RecordEditor(store)
    resolver = RecordResolver(store, EntityKind.INSURANCE_CARD)
    service = PatientTrendService(
        MeasurementHistoryAggregator(store), TrendAnalyzer(get_trend_config())
    )

    await demo_resolution(editor, resolver)
    await demo_trends(editor, service)


if __name__ == "__main__":
    asyncio.run(main())
