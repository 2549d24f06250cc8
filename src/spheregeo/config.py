from dataclasses import dataclass


@dataclass
class BuildOptions:
    """Options controlling how polygons are assembled from WKB rings."""

    check: bool = True
    oriented: bool = False
