from __future__ import annotations

import logging

from arq.worker import run_worker

from orgtenancy.workers.worker_settings import WorkerSettings


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # Runs the arq worker in its own process, separate from the API.
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
