# lambdas/log_check/rules.py
import os
import re
from pathlib import Path
from typing import List, Sequence, Union

from .errors import RulesDirectoryError


def load_rules(rules_dir: Union[str, Path]) -> List[str]:
    """
    Reads every regular file under rules_dir and returns its non-empty lines,
    one regex pattern per line. Directories and files are walked in sorted
    order so the rules are always tested in the same order.

    Raises:
        RulesDirectoryError: If the directory does not exist or a rule file cannot be read.
    """
    rules_path = Path(rules_dir)
    if not rules_path.is_dir():
        raise RulesDirectoryError(f"Rules directory '{rules_path}' not found")

    def _raise_walk_error(e: OSError):
        raise RulesDirectoryError(f"Cannot read rules directory '{rules_path}': {e}") from e

    rules = []
    for dirpath, dirnames, filenames in os.walk(rules_path, onerror=_raise_walk_error):
        dirnames.sort()
        for filename in sorted(filenames):
            rule_file = Path(dirpath) / filename
            if not rule_file.is_file():
                continue
            try:
                with open(rule_file, 'r', encoding='utf-8') as f:
                    for line in f:
                        pattern = line.rstrip("\r\n")
                        if pattern.strip():
                            rules.append(pattern)
            except (OSError, UnicodeDecodeError) as e:
                raise RulesDirectoryError(f"Cannot read rule file '{rule_file}': {e}") from e

    if not rules:
        print(f"⚠️ Warning: No rules found in '{rules_path}'. Every log line will be reported.")
    else:
        print(f"Loaded {len(rules)} rules from '{rules_path}'.")
    return rules


def compile_patterns(patterns: Sequence[str], kind: str) -> List[re.Pattern]:
    """
    Compiles the patterns in order. A pattern that does not compile is
    reported and skipped, the others still apply.
    """
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            print(f"⚠️ Invalid {kind} pattern '{pattern}' skipped: {e}")
    return compiled


def _first_match(compiled: Sequence[re.Pattern], value: str) -> bool:
    return any(regex.search(value) for regex in compiled)


class RuleMatcher:
    """Regex rules matched against the text of a log line. A match means the line is expected noise."""

    def __init__(self, rules: Sequence[str]):
        self.rules = compile_patterns(rules, "rule")

    def matches_any_rule(self, line: str) -> bool:
        return _first_match(self.rules, line)


class ContainerFilter:
    """
    Ignore lists for container images and container names.
    A match on either excludes the whole stream the event belongs to.
    """

    def __init__(self, images_to_ignore: Sequence[str] = (), container_names_to_ignore: Sequence[str] = ()):
        self.images = compile_patterns(images_to_ignore, "image")
        self.container_names = compile_patterns(container_names_to_ignore, "container name")

    def is_image_ignored(self, image: str) -> bool:
        return _first_match(self.images, image)

    def is_container_ignored(self, name: str) -> bool:
        return _first_match(self.container_names, name)
