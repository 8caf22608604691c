"""Lookup of request paths against the externally supplied episode metadata."""

import collections
import pathlib
import re
import urllib.parse

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    DirectoryPath,
    Field,
    FilePath,
    field_validator,
    model_validator,
    validate_call,
)

from ._exceptions import MissingEpisodeMetadataError
from ._globals import _MULTIPLE_SLASHES_REGEX


class EpisodeAsset(BaseModel):
    """
    One audio file of an episode, as described by the episode metadata.

    Exactly one of `path` (matched exactly) or `path_pattern` (a regular expression matched against the whole path)
    must be given.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    episode_id: str
    path: str | None = None
    path_pattern: str | None = None
    size_in_bytes: int | None = Field(default=None, ge=0)

    @field_validator("episode_id", mode="before")
    @classmethod
    def _stringify_episode_id(cls, value):
        # YAML happily turns '12' into an integer
        return str(value) if isinstance(value, int) else value

    @model_validator(mode="after")
    def _check_path_or_path_pattern(self) -> "EpisodeAsset":
        if (self.path is None) == (self.path_pattern is None):
            raise ValueError(f"Episode '{self.episode_id}' must specify exactly one of `path` or `path_pattern`!")
        if self.path_pattern is not None:
            try:
                re.compile(pattern=self.path_pattern)
            except re.error as exception:
                message = f"Episode '{self.episode_id}' has an invalid `path_pattern`: {exception}"
                raise ValueError(message) from exception

        return self


class EpisodeResolver:
    def __init__(self, *, episode_assets: list[EpisodeAsset]):
        """
        Resolve request paths to episodes.

        Parameters
        ----------
        episode_assets : list of EpisodeAsset
            The known episodes. Each episode identifier may only appear once.
        """
        episode_id_counts = collections.Counter(episode_asset.episode_id for episode_asset in episode_assets)
        duplicated_episode_ids = sorted(episode_id for episode_id, count in episode_id_counts.items() if count > 1)
        if len(duplicated_episode_ids) != 0:
            raise ValueError(f"Episode metadata contains duplicated episode IDs: {duplicated_episode_ids}")

        self.episode_assets = list(episode_assets)
        self._episode_asset_by_path = {
            episode_asset.path: episode_asset for episode_asset in episode_assets if episode_asset.path is not None
        }
        self._episode_assets_by_pattern = [
            (re.compile(pattern=episode_asset.path_pattern), episode_asset)
            for episode_asset in episode_assets
            if episode_asset.path_pattern is not None
        ]

    def resolve(self, *, request_path: str) -> EpisodeAsset | None:
        """
        Find the episode requested by a path, or None if the path is not an episode.

        Raises
        ------
        MissingEpisodeMetadataError
            If the path belongs to an episode whose size is unknown.
        """
        handled_path = urllib.parse.unquote(request_path.split("?", 1)[0])
        handled_path = _MULTIPLE_SLASHES_REGEX.sub("/", handled_path)

        episode_asset = self._episode_asset_by_path.get(handled_path, None)
        if episode_asset is None:
            episode_asset = next(
                (
                    episode_asset
                    for path_pattern, episode_asset in self._episode_assets_by_pattern
                    if path_pattern.fullmatch(string=handled_path) is not None
                ),
                None,
            )
        if episode_asset is None:
            return None

        if not episode_asset.size_in_bytes:
            message = f"Episode '{episode_asset.episode_id}' (requested as '{request_path}') has no known size!"
            raise MissingEpisodeMetadataError(message, episode_id=episode_asset.episode_id)

        return episode_asset


@validate_call
def load_episode_assets(*, episode_metadata_file_path: FilePath) -> list[EpisodeAsset]:
    """
    Load episode metadata from a YAML file.

    The file is expected to hold a list under the key 'episodes', for example...

    ```yaml
    episodes:
      - episode_id: "001"
        path: /episode-001.m4a
        size_in_bytes: 31415926
      - episode_id: "002"
        path_pattern: "/media/episode-002(-hq)?\\.mp3"
        size_in_bytes: 27182818
    ```
    """
    with open(file=episode_metadata_file_path) as stream:
        episode_metadata = yaml.load(stream=stream, Loader=yaml.SafeLoader) or dict()

    episode_assets = [EpisodeAsset.model_validate(entry) for entry in episode_metadata.get("episodes", [])]

    return episode_assets


@validate_call
def find_episode_assets_in_folder(
    *,
    episodes_folder_path: DirectoryPath,
    file_name_prefix: str = "episode-",
    file_suffix: str = ".m4a",
) -> list[EpisodeAsset]:
    """
    Derive the episode metadata from the audio files being served.

    Every file named '<file_name_prefix><episode ID><file_suffix>' directly inside the folder is assumed to be served
    from the root of the site, so 'episode-012.m4a' becomes episode '012' at '/episode-012.m4a' with its size on disk.
    """
    episodes_folder_path = pathlib.Path(episodes_folder_path)

    episode_assets = []
    for episode_file_path in sorted(episodes_folder_path.glob(f"{file_name_prefix}*{file_suffix}")):
        if not episode_file_path.is_file():
            continue

        episode_id = episode_file_path.name[len(file_name_prefix) : -len(file_suffix)]
        if episode_id == "":
            continue

        episode_asset = EpisodeAsset(
            episode_id=episode_id,
            path=f"/{episode_file_path.name}",
            size_in_bytes=episode_file_path.stat().st_size,
        )
        episode_assets.append(episode_asset)

    return episode_assets
