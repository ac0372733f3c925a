import sys
import os
from pathlib import Path

# Add the src directory to Python path for imports
root_dir = Path(__file__).parent
src_dir = root_dir / "src"
sys.path.insert(0, str(src_dir))
sys.path.insert(0, str(root_dir))

# boto3 needs a region to build clients even when every call is mocked
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")


def pytest_configure(config):
    """
    Register custom markers
    """
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
