import logging
import logging.handlers
import os
from pathlib import Path

# Log directory, created on first use
LOGS_DIR = Path(os.environ.get("RATION_LOG_DIR", "logs"))

_HANDLERS = None


# Logging configuration
def setup_logging(logs_dir=None):
    """Setup logging handlers for the ration engine"""
    logs_dir = Path(logs_dir) if logs_dir is not None else LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    # Create formatters
    detailed_formatter = logging.Formatter(
        '%(asctime)s | %(name)s | %(levelname)s | %(filename)s:%(lineno)d | %(funcName)s | %(message)s'
    )

    simple_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s'
    )

    handlers = {}

    # 1. General application log
    app_handler = logging.handlers.RotatingFileHandler(
        logs_dir / "app.log",
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5
    )
    app_handler.setLevel(logging.INFO)
    app_handler.setFormatter(detailed_formatter)
    handlers['app'] = app_handler

    # 2. Calculation log (requirement, supply and balance steps)
    calc_handler = logging.handlers.RotatingFileHandler(
        logs_dir / "calculation.log",
        maxBytes=20*1024*1024,  # 20MB
        backupCount=3
    )
    calc_handler.setLevel(logging.DEBUG)
    calc_handler.setFormatter(detailed_formatter)
    handlers['calculation'] = calc_handler

    # 3. Error log (all errors from all modules)
    error_handler = logging.handlers.RotatingFileHandler(
        logs_dir / "error.log",
        maxBytes=5*1024*1024,  # 5MB
        backupCount=5
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)
    handlers['error'] = error_handler

    # 4. Console handler for development
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(simple_formatter)
    handlers['console'] = console_handler

    return handlers


def get_handlers():
    global _HANDLERS
    if _HANDLERS is None:
        _HANDLERS = setup_logging()
    return _HANDLERS


def get_logger(name, handlers=None):
    """Get a logger with the specified handlers"""
    if handlers is None:
        handlers = get_handlers()

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    # Add handlers based on logger name
    if 'calculation' in name.lower() or 'ration' in name.lower():
        logger.addHandler(handlers['calculation'])
        logger.addHandler(handlers['error'])
    else:
        logger.addHandler(handlers['app'])
        logger.addHandler(handlers['error'])

    # Always add console handler for development
    logger.addHandler(handlers['console'])

    return logger


# Convenience functions for common logging patterns
def log_calculation_start(logger, profile_name, weight_kg, feed_count, strategy):
    """Log the start of a ration calculation"""
    logger.info(f"Starting ration calculation | Profile: {profile_name} | Weight: {weight_kg}kg | "
                f"Feeds: {feed_count} | Strategy: {strategy}")


def log_calculation_step(logger, step_name, details=None):
    """Log a calculation step"""
    details_str = f" | {details}" if details else ""
    logger.debug(f"Calculation Step: {step_name}{details_str}")


def log_calculation_complete(logger, calculation_time, vem_coverage, dve_coverage, warning_count):
    """Log completion of a ration calculation"""
    logger.info(f"Calculation Complete | Time: {calculation_time:.3f}s | VEM: {vem_coverage:.1f}% | "
                f"DVE: {dve_coverage:.1f}% | Warnings: {warning_count}")


def log_error(logger, error, context=None):
    """Log errors with context"""
    context_str = f" | Context: {context}" if context else ""
    logger.error(f"Error: {str(error)}{context_str}", exc_info=True)
