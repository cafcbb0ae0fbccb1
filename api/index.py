from dataclasses import replace
from mangum import Mangum
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from wallet.api import create_app
from wallet.config import get_settings

settings = get_settings()
app = create_app(replace(settings, api_root_path=settings.api_root_path or "/api"))

handler = Mangum(app, lifespan="off")
