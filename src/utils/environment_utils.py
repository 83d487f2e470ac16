from dotenv import load_dotenv
import os

# Utils
from utils.log_utils import LogUtil

"""
Utility class for environment variables
"""
class EnvironmentUtils:
    def __init__(self, log_util: LogUtil):

        # Load environment variables
        load_dotenv()

        # Initialize logger
        self.log_util = log_util

        # Environment variables
        self.env_variables = {
            "APP_ENV": os.getenv("APP_ENV", "production"),
            "HOST": os.getenv("HOST", "0.0.0.0"),
            "PORT": int(os.getenv("PORT", "8020")),
            "LOKI_URL": os.getenv("LOKI_URL", ""),
            "FLOW_API_URL": os.getenv("FLOW_API_URL", "http://localhost:3001"),
            "REFERENCE_API_URL": os.getenv("REFERENCE_API_URL", os.getenv("FLOW_API_URL", "http://localhost:3001")),
            "UPLOAD_API_URL": os.getenv("UPLOAD_API_URL", os.getenv("FLOW_API_URL", "http://localhost:3001")),
            "HTTP_TIMEOUT_SECONDS": float(os.getenv("HTTP_TIMEOUT_SECONDS", "15")),
            "AUTOSAVE_DEBOUNCE_SECONDS": float(os.getenv("AUTOSAVE_DEBOUNCE_SECONDS", "3.0")),
            "CANVAS_DEBOUNCE_SECONDS": float(os.getenv("CANVAS_DEBOUNCE_SECONDS", "0.5")),
            "SESSION_IDLE_TIMEOUT_SECONDS": float(os.getenv("SESSION_IDLE_TIMEOUT_SECONDS", "3600")),
            "DEBUG": os.getenv("DEBUG", "false"),
        }

    def get_env_variable(self, variable_name: str) -> str | int | float:
        if variable_name not in self.env_variables:
            self.log_util.error(service_name="EnvironmentUtils", message=f"Environment variable {variable_name} not found")
            raise ValueError(f"Environment variable {variable_name} not found")
        return self.env_variables[variable_name]
