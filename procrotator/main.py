import os
import sys
import logging
import setproctitle
from typing import Optional, Sequence

from procrotator import settings
from procrotator.log import setup_logging
from procrotator.config import ConfigError, build_runtime_config
from procrotator.supervisor import ShutdownCoordinator
from procrotator.watcher import get_directories_to_watch

log = logging.getLogger(settings.APP_NAME)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    The main entry point for procrotator.

    :param argv: Command line arguments without the program name. Defaults to sys.argv[1:].
    :return int: The process exit status.
    """
    # Bootstrap logging so configuration errors are visible before the
    # configured level is known.
    setup_logging(logging.INFO)

    try:
        config = build_runtime_config(argv)
    except ConfigError as e:
        log.error(str(e))
        return 1

    setup_logging(config.log_level)

    try:
        os.chdir(config.working_directory)
    except OSError as e:
        log.error(f"Could not enter working directory '{config.working_directory}': {e}")
        return 1

    # Variables from the project's .env become available to $VAR expansion in commands.
    settings.load_environment(config.working_directory)
    setproctitle.setproctitle(settings.PROCESS_TITLE_TEMPLATE.format(server_command=config.server_command))
    log.debug(str(config))

    try:
        directories = get_directories_to_watch(config.working_directory)
    except OSError as e:
        log.error(f"walking root directory: {e}")
        return 1

    ShutdownCoordinator(config, directories).run()
    log.info("Shutdown complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
