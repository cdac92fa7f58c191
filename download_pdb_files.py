import os, sys, time, logging, argparse
from typing import NamedTuple

import requests

from get_guid import get_pdb_identifier
from list_binaries import list_system32
from pdb_meta import (
    MICROSOFT_SYMBOL_STORE,
    DirectoryUnreadable,
    DownloadExhausted,
    SymbolNotFound,
)

MAX_ATTEMPTS = 5
INITIAL_DELAY = 1.0
TIMEOUT = 60
CHUNK_SIZE = 32 * 1024

log = logging.getLogger(__name__)


class Summary(NamedTuple):
    attempted: int = 0
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0


def is_retryable(status_code):
    return status_code == 429 or status_code >= 500


def read_body(response):
    # a body that breaks mid-transfer is returned as empty, not retried
    try:
        return b"".join(response.iter_content(CHUNK_SIZE))
    except requests.exceptions.RequestException as e:
        log.warning("[x] unreadable response body from %s : %s" % (response.url, e))
        return b""
    finally:
        response.close()


def download_pdb(pdb, url=MICROSOFT_SYMBOL_STORE, max_attempts=MAX_ATTEMPTS,
                 delay=INITIAL_DELAY, timeout=TIMEOUT, sleep=time.sleep):
    """Fetch the PDB described by `pdb` from the symbol store at `url`.

    Transport errors, 429 and 5xx answers are retried up to `max_attempts`
    times, sleeping `delay` seconds before the second attempt and doubling it
    after each failure. Any other 4xx raises SymbolNotFound straight away.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1, got %d" % max_attempts)
    pdb_url = pdb.url(url)
    log.info("[-] generated download url : %s" % pdb_url)
    last_error = None
    for attempt in range(1, max_attempts + 1):
        log.debug("[-] attempt %d : %s" % (attempt, pdb_url))
        try:
            response = requests.get(pdb_url, stream=True, timeout=timeout)
        except requests.exceptions.RequestException as e:
            last_error = e
        else:
            status = response.status_code
            if 200 <= status < 300:
                log.info("[+] found pdb at url : %s" % pdb_url)
                return read_body(response)
            response.close()
            if not is_retryable(status):
                log.warning("[x] not found pdb at url : %s (HTTP %d)" % (pdb_url, status))
                raise SymbolNotFound(pdb_url, status)
            last_error = requests.exceptions.HTTPError("HTTP %d for %s" % (status, pdb_url), response=response)
        if attempt == max_attempts:
            break
        log.warning("[x] attempt %d failed : %s, retrying in %ss" % (attempt, last_error, delay))
        sleep(delay)
        delay *= 2
    log.error("[x] giving up on %s after %d attempts" % (pdb_url, max_attempts))
    raise DownloadExhausted(pdb_url, max_attempts, last_error)


def write_pdb(output_filename, data):
    os.makedirs(os.path.dirname(output_filename), exist_ok=True)
    with open(output_filename, 'wb') as f:
        f.write(data)


def fetch_system32_pdbs(folder, out_dir="pdbs", url=MICROSOFT_SYMBOL_STORE,
                        max_attempts=MAX_ATTEMPTS, timeout=TIMEOUT, strict=False,
                        sleep=time.sleep):
    """Download the PDB of every binary in `folder`'s System32 into `out_dir`.

    Only DirectoryUnreadable escapes; a file or symbol that cannot be handled
    is counted and skipped.
    """
    log.info("[-] fetching system32 pdbs from : %s" % folder)
    attempted = downloaded = skipped = failed = 0
    for path in list_system32(folder):
        pdb = get_pdb_identifier(path, strict=strict)
        if pdb is None:
            skipped += 1
            continue
        out = os.path.join(out_dir, pdb.name, pdb.symbol_id, pdb.name)
        if os.path.exists(out):
            log.info("[-] pdb already exists : %s" % out)
            skipped += 1
            continue
        attempted += 1
        try:
            data = download_pdb(pdb, url=url, max_attempts=max_attempts,
                                timeout=timeout, sleep=sleep)
        except (DownloadExhausted, SymbolNotFound) as e:
            log.warning("[x] failed to download pdb for %s : %s" % (path, e))
            failed += 1
            continue
        if not data:
            log.warning("[x] empty pdb for %s, not written" % path)
            failed += 1
            continue
        try:
            write_pdb(out, data)
        except OSError as e:
            log.warning("[x] cannot write %s : %s" % (out, e))
            failed += 1
            continue
        log.info("[+] wrote %s" % out)
        downloaded += 1
    summary = Summary(attempted, downloaded, skipped, failed)
    log.info("[+] attempted %d, downloaded %d, skipped %d, failed %d" % summary)
    return summary


def positive_int(value):
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1, got %s" % value)
    return number


def main(argv=None):
    p = argparse.ArgumentParser("download the pdbs of a windows installation from a symbol store")
    p.add_argument("folder", type=str, help="path to the windows installation")
    p.add_argument("--dir", type=str, default="pdbs")
    p.add_argument("--url", type=str, default=MICROSOFT_SYMBOL_STORE)
    p.add_argument("--attempts", type=positive_int, default=MAX_ATTEMPTS)
    p.add_argument("--timeout", type=float, default=TIMEOUT)
    p.add_argument("--strict", action="store_true", help="require an RSDS codeview record")
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger('requests').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    try:
        fetch_system32_pdbs(args.folder, args.dir, url=args.url, max_attempts=args.attempts,
                            timeout=args.timeout, strict=args.strict)
    except DirectoryUnreadable as e:
        log.error("[x] %s" % e)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
