"""Detached GPG signatures for generated snapshots."""

import subprocess

SIGNATURE_SUFFIX = ".asc"


def sign_bytes(data: bytes, key: str, gpg: str = "gpg") -> bytes:
    """Produce an armored detached signature of ``data``.

    Args:
        data: The exact bytes that will be written as the snapshot.
        key: Key id or fingerprint passed to ``--local-user``.
        gpg: GnuPG executable.

    Returns:
        The ASCII-armored signature.

    Raises:
        RuntimeError: if gpg is missing or exits non-zero.
    """
    cmd = [gpg, "--batch", "--yes", "--armor", "--local-user", key, "--detach-sign", "--output", "-"]
    try:
        result = subprocess.run(cmd, input=data, capture_output=True, check=False)
    except OSError as e:
        raise RuntimeError(f"Could not run {gpg}: {e}") from e
    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise RuntimeError(f"gpg signing with key {key} failed: {stderr or f'exit {result.returncode}'}")
    return result.stdout
