FRIENDLY_MESSAGES = {
    "ConnectionError": "Unable to connect to a required service. Please try again later.",
    "TimeoutError": "The request took too long. Please try again later.",
    "DBAPIError": "Temporary issue while accessing data. Please try again shortly.",
    "SQLAlchemyError": "Temporary issue while accessing data. Please try again shortly.",
    "ValueError": "Invalid data received. Please check your input and try again.",
    "KeyError": "Some required information is missing.",
    "PermissionError": "You don’t have permission to perform this action.",
}


def get_friendly_message(error: Exception) -> str:
    for klass in type(error).__mro__:
        if klass.__name__ in FRIENDLY_MESSAGES:
            return FRIENDLY_MESSAGES[klass.__name__]
    return "Something went wrong on our end. Please try again."
