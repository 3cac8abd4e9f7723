"""
Application version management.

Version format: MAJOR.MINOR.PATCH
- MAJOR: Breaking changes to the API or stored mapping format
- MINOR: New features, backward compatible
- PATCH: Bug fixes and small improvements
"""

import os
import subprocess

__version__ = "1.0.0"

# Build metadata
__build_date__ = "2026-10-17"


def get_version():
    """Get the current application version."""
    return __version__


def _git_commit():
    commit = os.environ.get('GIT_COMMIT')
    if commit:
        return commit
    try:
        result = subprocess.run(
            ['git', 'rev-parse', '--short', 'HEAD'],
            capture_output=True,
            text=True,
            timeout=5
        )
    except (OSError, subprocess.SubprocessError):
        return 'unknown'
    if result.returncode == 0 and result.stdout.strip():
        return result.stdout.strip()
    return 'unknown'


def get_build_info():
    """Get complete build information."""
    return {
        'version': __version__,
        'build_date': __build_date__,
        'git_commit': _git_commit(),
        'environment': os.environ.get('ENVIRONMENT', 'development')
    }


def get_version_string():
    """Get formatted version string for display."""
    info = get_build_info()
    if info['git_commit'] != 'unknown':
        return f"v{info['version']} ({info['git_commit']})"
    return f"v{info['version']}"
