"""Settings, database, token codec and domain errors."""

import bcrypt


def _expose_bcrypt_version() -> None:
    # passlib 1.7 reads bcrypt.__about__.__version__, which bcrypt 4 dropped.
    # Must run before passlib loads its bcrypt backend.
    if hasattr(bcrypt, "__about__"):
        return

    class _About:
        __version__ = bcrypt.__version__

    bcrypt.__about__ = _About()


_expose_bcrypt_version()
