"""
Error Handlers for the ration engine
Provides user-friendly error messages for presentation layers
"""

from typing import Dict, Any

from pydantic import ValidationError

from core.ration.utilities import InputValidationError

# Field-specific messages for input validation errors
FIELD_MESSAGES = {
    "weight_kg": ("Body weight must be greater than zero.", "Enter the live weight in kg."),
    "ds_percent": ("Dry matter percentage must be between 0 and 100.", "Check the DS% of each feed."),
    "amount_kg": ("Feed amounts cannot be negative.", "Correct the amount entered for each feed."),
    "substitution_rate": ("Substitution rate must be between 0 and 1.", "Use a rate between 0.40 and 0.50."),
    "milk": ("Milk production data is required for the dynamic requirement.",
             "Enter a milk recording or select the profile default requirement."),
    "milk_kg": ("Milk yield cannot be negative.", "Check the milk recording data."),
    "fat_percent": ("Milk fat percentage cannot be negative.", "Check the milk recording data."),
    "protein_percent": ("Milk protein percentage cannot be negative.", "Check the milk recording data."),
    "parity": ("Parity must be 1 or higher.", "Enter the lactation number (1 = first lactation)."),
    "days_in_milk": ("Days in milk cannot be negative.", "Check the calving date."),
    "days_pregnant": ("Days pregnant cannot be negative.", "Check the insemination date."),
    "basis": ("Unknown feed basis.", "Use 'per kg DS' or 'per kg product'."),
    "strategy": ("Unknown requirement strategy.", "Select the profile default or dynamic requirement."),
}


def categorize_calculation_error(error: Exception, calculation_id: str = "unknown") -> Dict[str, Any]:
    """
    Categorize ration calculation errors and provide user-friendly messages

    Args:
        error (Exception): The exception raised by the engine
        calculation_id (str): Calculation identifier for logging

    Returns:
        Dict containing categorized error information
    """
    error_message = str(error)

    if isinstance(error, InputValidationError):
        user_message, action = FIELD_MESSAGES.get(
            error.field,
            (f"Invalid value for {error.field}.", "Check the entered values and try again."),
        )
        return {
            "error_type": "VALIDATION_ERROR",
            "field": error.field,
            "user_message": user_message,
            "technical_message": f"Input validation error: {error_message}",
            "suggested_action": action,
            "severity": "LOW",
            "category": "INPUT_VALIDATION",
        }

    elif isinstance(error, ValidationError):
        fields = sorted({".".join(str(p) for p in e["loc"]) for e in error.errors()})
        return {
            "error_type": "VALIDATION_ERROR",
            "field": ", ".join(fields),
            "user_message": "Some of the entered data is incomplete or out of range.",
            "technical_message": f"Model validation error: {error_message}",
            "suggested_action": f"Check the following fields: {', '.join(fields)}.",
            "severity": "LOW",
            "category": "INPUT_VALIDATION",
        }

    elif isinstance(error, (ZeroDivisionError, OverflowError, ArithmeticError)):
        return {
            "error_type": "CALCULATION_ERROR",
            "field": None,
            "user_message": "Unable to calculate the ration. Please check animal information.",
            "technical_message": f"Calculation error: {error_message}",
            "suggested_action": "Verify animal weight, milk production, and other parameters are realistic.",
            "severity": "MEDIUM",
            "category": "CALCULATION",
        }

    else:
        # Generic error for unknown issues
        return {
            "error_type": "UNKNOWN_ERROR",
            "field": None,
            "user_message": "An unexpected error occurred during the ration calculation.",
            "technical_message": f"Unknown error: {error_message}",
            "suggested_action": "Please try again. If the problem persists, contact support with calculation ID: " + calculation_id,
            "severity": "HIGH",
            "category": "UNKNOWN",
        }


def create_user_friendly_error_response(error_info: Dict[str, Any], calculation_id: str = "unknown") -> Dict[str, Any]:
    """
    Create a user-friendly error response for presentation layers

    Args:
        error_info (Dict): Categorized error information
        calculation_id (str): Calculation identifier

    Returns:
        Dict containing the error response
    """
    return {
        "status": "ERROR",
        "calculation_id": calculation_id,
        "error": {
            "type": error_info["error_type"],
            "field": error_info.get("field"),
            "message": error_info["user_message"],
            "suggested_action": error_info["suggested_action"],
            "severity": error_info["severity"],
            "category": error_info["category"],
            "support_reference": f"REF-{calculation_id}-{error_info['error_type']}"
        },
        "warnings": [error_info["user_message"]],
        "recommendations": [error_info["suggested_action"]]
    }


def log_error_details(error_info: Dict[str, Any], calculation_id: str, original_error: str, logger=None):
    """
    Log detailed error information for debugging

    Args:
        error_info (Dict): Categorized error information
        calculation_id (str): Calculation identifier
        original_error (str): Original error message
        logger: Logger instance (optional)
    """
    log_message = (
        f"ERROR ANALYSIS for CALC_{calculation_id}: "
        f"Type: {error_info['error_type']} | Category: {error_info['category']} | "
        f"Severity: {error_info['severity']} | Technical: {error_info['technical_message']} | "
        f"Original: {original_error} | Reference: REF-{calculation_id}-{error_info['error_type']}"
    )

    if logger:
        if error_info["category"] == "INPUT_VALIDATION":
            logger.warning(log_message)
        else:
            logger.error(log_message)
    else:
        print(log_message)
