import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parent.parent

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def make_response(mocker, json_data=None, text=None, content=None, status_code=200):
    """Build a fake requests response."""
    response = mocker.Mock()
    response.status_code = status_code
    response.json.return_value = json_data
    response.text = text if text is not None else ''
    response.content = content if content is not None else response.text.encode('utf-8')
    response.raise_for_status.return_value = None
    return response


@pytest.fixture
def session(mocker):
    """A fake requests session."""
    fake = mocker.Mock()
    fake.headers = {}
    return fake
