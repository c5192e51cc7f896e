"""Transfer target for channels served from the local filesystem."""

import logging
import shutil

from subdircache.base.target import TransferTarget
from subdircache.utils import url_to_path

logger = logging.getLogger(__name__)


class LocalFileTarget(TransferTarget):
    """Copy a ``file://`` repodata file into the staging destination.

    Local reads have no HTTP status, so a successful copy reports status 0.
    """

    def perform(self) -> None:
        source = url_to_path(self.url)
        logger.info(f"Copying {source}")
        try:
            shutil.copyfile(source, self.destination)
        except FileNotFoundError:
            logger.info(f"No such file: {source}")
            self.result = 1
            self.http_status = 404
            return
        except OSError as e:
            logger.warning(f"Could not copy {source}: {e}")
            self.result = 1
            return
        self.http_status = 0
