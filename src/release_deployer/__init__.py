"""Release deployer.

A self-updating deployment agent that fetches signed GitHub release
tarballs, verifies them, unpacks them into per-release directories and
atomically switches a per-target symlink to the newest one.
"""

__version__ = "0.1.0"
