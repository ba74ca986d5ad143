from loguru import logger

from canvas_workspace.cli import app


def main() -> None:
    logger.debug("Starting canvas-workspace CLI")
    app()


if __name__ == "__main__":
    main()
