"""Supabase Storage service for dispute evidence files.

Files land in the evidence bucket (EVIDENCE_BUCKET) under a per-dispute
folder, e.g. disputes/42/evidence/<uuid>.pdf.
"""

import os
import logging
from uuid import uuid4

from chama_disputes.services.errors import InvalidArgument, Unavailable

logger = logging.getLogger(__name__)

# Supabase client (lazy initialization)
_supabase_client = None


def get_supabase_client():
    """Get or create Supabase client (lazy initialization)."""
    global _supabase_client

    if _supabase_client is None:
        url = os.getenv('SUPABASE_URL')
        key = os.getenv('SUPABASE_SERVICE_KEY')

        if not url or not key:
            logger.warning('Supabase credentials not configured. Storage will not work.')
            return None

        try:
            from supabase import create_client
            _supabase_client = create_client(url, key)
            logger.info('Supabase client initialized successfully')
        except Exception as e:
            logger.error(f'Failed to initialize Supabase client: {e}')
            return None

    return _supabase_client


def _bucket():
    return os.getenv('EVIDENCE_BUCKET', 'dispute-evidence')


def upload(file_data: bytes, file_name: str, content_type: str, folder: str,
           allowed_types, max_size: int) -> dict:
    """Upload a file and return its storage metadata.

    Returns:
        dict with 'url', 'key', 'size' and 'mime_type'

    Raises:
        InvalidArgument: file type not allowed or file too large
        Unavailable: storage not configured or the upload failed
    """
    if content_type not in allowed_types:
        raise InvalidArgument(
            f'File type {content_type} not allowed. Allowed types: {", ".join(allowed_types)}'
        )

    size = len(file_data)
    if size == 0:
        raise InvalidArgument('File is empty')
    if size > max_size:
        raise InvalidArgument(f'File size {size} bytes exceeds maximum {max_size} bytes')

    client = get_supabase_client()
    if client is None:
        raise Unavailable('Storage service not configured')

    ext = file_name.rsplit('.', 1)[-1].lower() if '.' in file_name else 'bin'
    key = f"{folder.strip('/')}/{uuid4().hex}.{ext}"

    try:
        logger.info(f'Uploading file to {_bucket()}/{key} ({content_type})')
        client.storage.from_(_bucket()).upload(
            path=key,
            file=file_data,
            file_options={"content-type": content_type}
        )
        public_url = client.storage.from_(_bucket()).get_public_url(key)
    except Exception as e:
        logger.error(f'Upload failed: {e}')
        raise Unavailable(f'Failed to upload file: {e}')

    logger.info(f'File uploaded successfully: {public_url}')
    return {'url': public_url, 'key': key, 'size': size, 'mime_type': content_type}


def delete(key: str) -> None:
    """Delete a stored file by key.

    Raises:
        Unavailable: storage not configured or the delete failed
    """
    client = get_supabase_client()
    if client is None:
        raise Unavailable('Storage service not configured')

    try:
        client.storage.from_(_bucket()).remove([key])
    except Exception as e:
        logger.error(f'Delete failed: {e}')
        raise Unavailable(f'Failed to delete file: {e}')

    logger.info(f'File deleted successfully: {key}')
