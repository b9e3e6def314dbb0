"""Main application entry point: run one full market data sync."""

import json
import sys

from market_sync.services.market_data_service import MarketDataService
from market_sync.services.progress import LoggingProgressSink
from market_sync.utils.config import Config
from market_sync.utils.logger import configure_logging
from market_sync.utils.metrics import MetricsCalculator
from market_sync.utils.sync_journal import SyncJournal


def main() -> int:
    """
    Load configuration, preload every series and print a sync summary.

    Returns:
        0 when every series loaded, 1 when some (or all) failed,
        2 for invalid configuration, 130 when interrupted
    """
    try:
        config = Config.from_env()
        config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(config.logging.level, config.logging.file_path)

    journal = SyncJournal()
    metrics = MetricsCalculator(journal)
    service = MarketDataService.from_config(config, journal=journal)
    service.set_progress_sink(LoggingProgressSink())

    try:
        report = service.preload_all()
    except KeyboardInterrupt:
        service.cancel()
        return 130
    finally:
        service.flush_notifications(timeout=5)
        service.close()

    # Read the snapshot the preload left behind; a miss here must not refetch
    assets = service.cache.get_ranked_list()
    summary = {
        "assets": [asset.id for asset in assets],
        "cached_series": service.cache.series_count(),
        "failed_loads": service.failed_load_count(),
        "cancelled": report.cancelled,
        "elapsed_ms": report.elapsed_ms,
        "trace_id": report.trace_id,
        "metrics": metrics.calculate(trace_id=report.trace_id).to_dict(),
    }
    print(json.dumps(summary, indent=2))
    return 0 if report.total_tasks and not report.failed else 1


if __name__ == "__main__":
    sys.exit(main())
