import os, logging

from pdb_meta import DirectoryUnreadable

BINARY_EXTENSIONS = frozenset(("dll", "exe", "sys", "drv", "cpl", "mui", "ocx"))

log = logging.getLogger(__name__)


def is_binary_name(name):
    ext = os.path.splitext(name)[1]
    return ext[1:].lower() in BINARY_EXTENSIONS if ext else False


def list_binaries(directory):
    """Return the native binaries directly inside `directory`, in listing order."""
    log.info("[-] listing binaries in : %s" % directory)
    found = []
    try:
        with os.scandir(directory) as it:
            for entry in it:
                if entry.is_dir() or not is_binary_name(entry.name):
                    continue
                log.debug("[+] binary found : %s" % entry.path)
                found.append(entry.path)
    except OSError as e:
        raise DirectoryUnreadable(f"cannot list {directory}: {e}") from e
    return found


def find_system32(root):
    path = os.path.join(root, "System32")
    if os.path.isdir(path):
        return path
    try:
        names = os.listdir(root)
    except OSError as e:
        raise DirectoryUnreadable(f"cannot list {root}: {e}") from e
    for name in names:
        if name.lower() == "system32" and os.path.isdir(os.path.join(root, name)):
            return os.path.join(root, name)
    return path


def list_system32(root):
    return list_binaries(find_system32(root))
