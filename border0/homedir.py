# border0/homedir.py
"""
Home directory lookup that respects sudo

When started with sudo, files such as the token file belong in the
invoking user's home, not root's.
"""

import os
import platform
from pathlib import Path


def get_user_home_dir() -> Path:
    """
    Return the home directory of the current user, or of SUDO_USER when set

    Raises:
        OSError: if the sudo user or the home directory cannot be resolved
    """
    sudo_username = os.environ.get("SUDO_USER", "")
    if sudo_username:
        if platform.system() == "Darwin":
            # macOS user records are not reliably visible through pwd
            return Path("/Users") / sudo_username
        import pwd
        try:
            return Path(pwd.getpwnam(sudo_username).pw_dir)
        except KeyError as e:
            raise OSError(f"couldn't get user details: {e}") from e

    try:
        return Path.home()
    except RuntimeError as e:
        raise OSError(f"couldn't get user home dir: {e}") from e
