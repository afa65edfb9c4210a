"""Resolution and creation of the remote folder chain above the synchronized file."""

from typing import List, Optional

from ..utils.logging import get_logger


def split_remote_directory(remote_dir_path: str) -> List[str]:
    """Split a slash-separated remote directory into its folder names."""
    return [segment for segment in remote_dir_path.split("/") if segment not in ("", ".")]


class RemoteDirectoryResolver:
    """Walks a remote directory path segment by segment, creating what is missing.

    Drive folders are linked to their parent by id rather than addressed by
    path, so each segment can only be looked up or created once the id of
    the segment before it is known.
    """

    def __init__(self, client, log=None):
        self.client = client
        self.logger = get_logger(self.__class__.__name__)
        self._log = log

    async def resolve_chain(self, remote_dir_path: str) -> List[str]:
        """Return the folder ids for every segment of ``remote_dir_path``, root first.

        Existing folders are reused, so resolving the same path twice does
        not create duplicates as long as no one else is creating folders
        concurrently.
        """
        resolved_ids: List[str] = []
        parent_id: Optional[str] = None

        for segment in split_remote_directory(remote_dir_path):
            # The first segment is matched by name alone
            folder = await self.client.find_folder(segment, parent_id=parent_id)

            if folder is None:
                if self._log:
                    self._log(f"Create partial directory {segment}")
                folder = await self.client.create_folder(segment, parent_id=parent_id)
            else:
                self.logger.debug("Reusing remote folder", name=segment, folder_id=folder.file_id)

            resolved_ids.append(folder.file_id)
            parent_id = folder.file_id

        return resolved_ids

    async def ensure_directory_chain(self, remote_dir_path: str) -> Optional[str]:
        """Make sure ``remote_dir_path`` exists and return the deepest folder id.

        Returns None for an empty path, meaning the Drive root.
        """
        resolved_ids = await self.resolve_chain(remote_dir_path)
        return resolved_ids[-1] if resolved_ids else None
