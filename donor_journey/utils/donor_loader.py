"""
Load donor id lists for batch analysis runs.

Format: one donor per line, ``donor_id | optional comment``.
Blank lines and lines starting with # are ignored. Duplicates are dropped,
first occurrence wins.
"""


def parse_donor_ids(lines) -> list[str]:
    donor_ids = []
    seen: set[str] = set()

    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        donor_id = line.split("|", 1)[0].strip()
        if not donor_id or donor_id in seen:
            continue

        seen.add(donor_id)
        donor_ids.append(donor_id)

    return donor_ids


def load_donor_ids(file_path: str) -> list[str]:
    """Load donor ids from a file."""
    with open(file_path) as f:
        return parse_donor_ids(f)
