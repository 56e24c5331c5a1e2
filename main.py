"""
Supervision Scheduler — Entry Point.

Single entry point: `python main.py` starts the occurrence sweep worker.
Logging is configured by the worker from LOG_LEVEL.
"""

from src.service.worker import main

if __name__ == "__main__":
    main()
