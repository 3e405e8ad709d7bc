from dotenv import load_dotenv

load_dotenv()

from config.settings import Settings, settings  # noqa: E402

__all__ = ["Settings", "settings"]
