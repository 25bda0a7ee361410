import sys
from pathlib import Path

import pytest

# Make the package importable when running tests from the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from termlink.config import parse_config  # noqa: E402
from termlink.glossary import build_lexicon, make_term  # noqa: E402


GLOSSARY_MD = """\
# Glossary

Terms used throughout this book.

API (Application Programming Interface)
: A set of protocols for building software.

REST
: Representational State Transfer.

XPT
: SAS Transport file format.
"""


@pytest.fixture
def terms():
    return [
        make_term("API (Application Programming Interface)",
                  "A set of protocols for building software."),
        make_term("REST", "Representational State Transfer."),
        make_term("XPT"),
    ]


@pytest.fixture
def lexicon(terms):
    return build_lexicon(terms)


@pytest.fixture
def config():
    return parse_config({})
