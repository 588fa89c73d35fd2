"""
Error taxonomy for the route topology builder.

Per-record problems never escape the parsing layer; dataset-level problems
propagate to the caller, which restores the previous output.
"""


class TopologyError(Exception):
    """Base class for every error raised by route_topology."""


class SourceFormatError(TopologyError):
    """A record lacks an expected field or has an unexpected shape."""


class EmptyInputError(TopologyError):
    """A dataset fetch produced zero usable records."""

    def __init__(self, dataset: str) -> None:
        super().__init__(f"No usable records in dataset '{dataset}'")
        self.dataset = dataset


class DatasetFetchError(TopologyError):
    """A whole dataset could not be downloaded or decoded."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason
