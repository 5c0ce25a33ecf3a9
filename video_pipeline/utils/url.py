"""
URL resolution utilities for converting local storage paths to API URLs.
"""

FILES_ENDPOINT = "/api/v1/assets/files"


def convert_local_path_to_url(file_path: str, api_base_url: str | None = None) -> str:
    """
    Convert a path relative to the local storage root into an API URL.

    Args:
        file_path: Storage-relative path (e.g., "projects/{project_id}/image/{asset_id}.png")
        api_base_url: Optional base URL for absolute URLs. If None, returns relative path.

    Returns:
        API URL (absolute if api_base_url provided, relative otherwise)
    """
    # If it's already a URL, return as-is
    if file_path.startswith(("http://", "https://")):
        return file_path

    if file_path.startswith(FILES_ENDPOINT):
        relative_url = file_path
    else:
        relative_url = f"{FILES_ENDPOINT}/{file_path.lstrip('/')}"

    if api_base_url:
        return f"{api_base_url.rstrip('/')}{relative_url}"
    return relative_url
