import logging
import sys

from kubelaunch.cli import app

if __name__ == "__main__":
    try:
        app(prog_name="kubelaunch")
    except Exception as e:
        logger = logging.getLogger("kubelaunch")
        if logger.isEnabledFor(logging.DEBUG):
            import traceback
            logger.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logger.error(f"Error: {e}")
        sys.exit(1)
