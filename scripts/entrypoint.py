import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("entrypoint")


def main() -> None:
  """Launch the API, or the standalone job worker when PROPOSALS_PROCESS_ROLE=worker."""
  if os.getenv("PROPOSALS_PROCESS_ROLE", "api").strip().lower() == "worker":
    logger.info("Starting proposal job worker...")
    os.execvp("python", ["python", "scripts/run_worker.py"])
  # Migrations run in a dedicated deploy step (alembic upgrade head).
  logger.info("Starting application (run alembic upgrade head in deploy pipeline)...")
  port = os.getenv("PORT", "8080")
  # Replace the current process so uvicorn receives SIGTERM directly.
  os.execvp("uvicorn", ["uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", port, "--no-server-header"])


if __name__ == "__main__":
  main()
