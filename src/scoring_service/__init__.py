import logging
import sys

from scoring_service.core.config import get_settings

# Package loggers write to stdout at the configured level. The root
# logger is left to the embedding application.
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setFormatter(
    logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
)

package_logger = logging.getLogger(__name__)
package_logger.setLevel(get_settings().log_level)
package_logger.addHandler(console_handler)

# Chatty libraries
logging.getLogger("numba").setLevel(logging.WARNING)
logging.getLogger("matplotlib").setLevel(logging.WARNING)
