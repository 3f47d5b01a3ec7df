from utils.logger import log_error, log_info, log_success, log_warning, setup_logging

__all__ = ["setup_logging", "log_info", "log_success", "log_warning", "log_error"]
