from fastapi.responses import JSONResponse
import copy

RESPONSES = {
    "invalid_identifier": {
        "http_status": 400,
        "status": "error",
        "message": "Instance IDs may only contain letters, digits, '-' and '_'."
    },

    "archive_invalid": {
        "http_status": 400,
        "status": "error",
        "message": "The uploaded file is not a valid backup archive."
    },

    "instance_not_found": {
        "http_status": 404,
        "status": "error",
        "message": "The instance has no data to back up."
    },

    "not_found": {
        "http_status": 404,
        "status": "error",
        "message": "The requested URL was not found on this server."
    },

    "validation_error": {
        "http_status": 422,
        "status": "error",
        "message": "The request could not be validated."
    },

    "rate_limited": {
        "http_status": 429,
        "status": "error",
        "message": "Too many requests, please try again later."
    },

    "transfer_failed": {
        "http_status": 500,
        "status": "error",
        "message": "Backup failed."
    },

    "restore_succeeded": {
        "http_status": 200,
        "status": "success",
        "message": "Backup for {instance_id} restored successfully!"
    },

    "restore_partial": {
        "http_status": 207,
        "status": "partial",
        "message": "Backup for {instance_id} was only partially restored."
    },
}


def respond(response_code: str, **kwargs):
    """
    Give the client a detailed response from a template

    :param response_code: The code to respond with. e.g. 'restore_succeeded'
    :param kwargs: Values for the message template. Also sent under the `extra` field.
    :return:
    """
    content = copy.copy(RESPONSES[response_code])
    status_code = content.pop('http_status')

    content['code'] = response_code
    content['message'] = content['message'].format_map(kwargs)

    if kwargs:
        # noinspection PyTypeChecker
        content['extra'] = kwargs

    resp = JSONResponse(
        content=content,
        status_code=status_code
    )
    return resp
