from __future__ import annotations

from assignment_api.core.config import get_settings
from assignment_api.core.logging_config import configure_logging
from assignment_api.worker.runner import WorkerConfig, run_worker_forever


def main() -> None:
    configure_logging(settings=get_settings())
    run_worker_forever(config=WorkerConfig())


if __name__ == "__main__":
    main()
