import json
import logging
import os
import re
import subprocess
from datetime import datetime
from typing import List, Optional

from procedure import PurgeProcedure, PurgeResult
from purge_errors import ExecutionError, FormatError, InvalidIdentifierError, PurgeConnectionError
from request_parser import MAX_CUTOFF, MIN_CUTOFF, PurgeRequest

logger = logging.getLogger(__name__)

HEX_OID_RE = re.compile(r"\b([0-9a-fA-F]{24})\b")
TOTAL_RE = re.compile(r"Total Documents to delete\s*-\s*(\d+)")

# Errors are caught inside the shell so a nonzero exit only means "no connection".
VALIDATE_EXPR = (
    "try {{ print(ObjectId({oid}).getTimestamp()); }} "
    "catch (e) {{ print('Error: ' + e.message); }}"
)
FROM_DATE_EXPR = (
    'var s = Math.floor(ISODate("{instant}").getTime() / 1000).toString(16); '
    'while (s.length < 8) {{ s = "0" + s; }} '
    'print(ObjectId(s + "0000000000000000"));'
)


def script_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"purge_{now.strftime('%Y%m%d%H%M%S')}.js"


def parse_object_id(output: str) -> str:
    """Pull the ObjectId hex string out of shell output.

    Legacy shells print banner lines before the value, so line 3 is tried
    first; newer shells print just the value, possibly quoted.
    """
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    candidates = lines[2:3] + list(reversed(lines))
    for line in candidates:
        quoted = re.search(r"""["']([^"']+)["']""", line)
        text = quoted.group(1) if quoted else line
        match = HEX_OID_RE.search(text)
        if match:
            return match.group(1).lower()
    raise ExecutionError(f"Could not read an ObjectId from mongo shell output: {output!r}")


class ShellBackend:
    """Runs every purge step through an external mongo shell client."""

    def __init__(self, request: PurgeRequest):
        self.request = request

    def connection_args(self) -> List[str]:
        r = self.request
        return [
            r.shell_bin,
            "--quiet",
            "--host", r.host,
            "-u", r.username,
            "-p", r.password,
            "--authenticationDatabase", r.auth_database,
        ]

    def evaluate(self, expression: str) -> str:
        """Evaluate a small expression and return the client's stdout."""
        cmd = self.connection_args() + ["--eval", expression]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise PurgeConnectionError(f"Unable to run {self.request.shell_bin}: {e}") from e
        if result.returncode != 0:
            raise PurgeConnectionError(
                f"Unable to connect to mongod. Exiting... ({result.stderr.strip() or result.stdout.strip()})"
            )
        return result.stdout

    def ping(self) -> None:
        self.evaluate("db.runCommand({ping: 1}).ok")

    def validate_object_id(self, oid: str) -> str:
        logger.info(f"Validating ObjectId ['{oid}']")
        # json.dumps yields a safe JS string literal for any input
        output = self.evaluate(VALIDATE_EXPR.format(oid=json.dumps(oid))).strip()
        if "error" in output.lower():
            raise InvalidIdentifierError(
                f"Invalid ObjectId. This is usually a 24 character hex string. Actual error message: {output}"
            )
        logger.info(f"ObjectId [{oid}] is Valid.")
        return output

    def resolve_cutoff(self, value: datetime) -> str:
        if not MIN_CUTOFF <= value.replace(tzinfo=None) <= MAX_CUTOFF:
            raise FormatError(f"Date time [{value}] cannot be encoded in an ObjectId. Exiting...")
        instant = value.strftime("%Y-%m-%dT%H:%M:%SZ")
        return parse_object_id(self.evaluate(FROM_DATE_EXPR.format(instant=instant)))

    def write_script(self, procedure: PurgeProcedure) -> str:
        os.makedirs(self.request.script_dir, exist_ok=True)
        path = os.path.join(self.request.script_dir, script_name())
        logger.info(f"Creating javascript file [{path}] on the fly...")
        with open(path, "w", encoding="utf-8") as f:
            f.write(procedure.render_script())
        return path

    def execute(self, procedure: PurgeProcedure) -> PurgeResult:
        """Feed the generated script to the client and wait for it to finish.

        The script file is left in ``script_dir`` after the run.
        """
        path = self.write_script(procedure)
        total = 0
        batches = 0
        with open(path, "r", encoding="utf-8") as script:
            try:
                proc = subprocess.Popen(
                    self.connection_args(),
                    stdin=script,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                )
            except OSError as e:
                raise ExecutionError(f"Failed at running javaScript file {path}: {e}") from e
            for line in proc.stdout:
                line = line.rstrip()
                if not line:
                    continue
                logger.info(line)
                m = TOTAL_RE.search(line)
                if m:
                    total = int(m.group(1))
                elif "Documents Remaining" in line or "Deletion is complete" in line:
                    batches += 1
            returncode = proc.wait()

        if returncode != 0:
            raise ExecutionError(f"Failed at running javaScript file {path} (exit {returncode}). Exiting...")
        # The shell does not report per-batch deletes; the initial count is the estimate.
        return PurgeResult(total=total, deleted=total, batches=batches if total > 0 else 0)

    def close(self) -> None:
        pass
