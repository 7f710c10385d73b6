"""Scratch file management for per-segment pipeline work."""

import os
import logging
import shutil
import random
import string
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, List

from ..models.audio import Segment

logger = logging.getLogger(__name__)

SMALL_SEGMENT_BYTES = 1000


class FileManager:
    """Manages the scratch directories that hold a segment's intermediate files.

    Each segment gets its own directory; everything the converter and the
    transcription engine write for that segment lands there and is removed
    together once the pipeline run ends.
    """
    
    def __init__(self, temp_dir: str = "./temp"):
        """Initialize file manager with the scratch root.
        
        Args:
            temp_dir: Base directory for per-segment scratch directories
        """
        self.temp_dir = Path(temp_dir)
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"FileManager initialized with temp_dir: {self.temp_dir}")
    
    def create_scratch_directory(self, segment_id: str) -> Path:
        """Create a fresh scratch directory for one segment.
        
        Returns:
            Path of the new directory (timestamp-based with random suffix)
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
        scratch_path = self.temp_dir / f"{timestamp}_{random_suffix}_{segment_id}"
        scratch_path.mkdir(parents=True, exist_ok=False)
        logger.debug(f"Created scratch directory: {scratch_path}")
        return scratch_path
    
    def save_segment(self, segment: Segment, scratch_path: Path) -> Path:
        """Write the segment's bytes into its scratch directory.
        
        Returns:
            Full path to the saved audio file
        """
        audio_path = scratch_path / f"audio_{segment.segment_id}.{segment.encoding}"
        with open(audio_path, 'wb') as f:
            f.write(segment.audio_data)
        
        size = os.path.getsize(audio_path)
        logger.info(f"Audio saved to: {audio_path} ({size} bytes)")
        if size < SMALL_SEGMENT_BYTES:
            logger.warning("Audio file is very small, might be silent")
        return audio_path
    
    def remove_scratch_directory(self, scratch_path: Path) -> bool:
        """Delete a scratch directory and everything in it, best effort.
        
        Returns:
            True if the directory is gone afterwards
        """
        try:
            shutil.rmtree(scratch_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove scratch directory {scratch_path}: {e}")
        return not Path(scratch_path).exists()
    
    def list_scratch_directories(self) -> List[Path]:
        return sorted(path for path in self.temp_dir.iterdir() if path.is_dir())
    
    def cleanup_stale(self, max_age_seconds: int = 3600) -> int:
        """Remove scratch directories left behind by runs that never cleaned up.
        
        Returns:
            Number of directories removed
        """
        cutoff_time = datetime.now().timestamp() - max_age_seconds
        cleaned_count = 0
        
        for scratch_path in self.list_scratch_directories():
            if scratch_path.stat().st_mtime < cutoff_time:
                if self.remove_scratch_directory(scratch_path):
                    cleaned_count += 1
                    logger.info(f"Cleaned up stale scratch directory: {scratch_path}")
        
        if cleaned_count:
            logger.info(f"Cleaned up {cleaned_count} stale scratch directories")
        return cleaned_count
    
    def get_storage_stats(self) -> Dict[str, Any]:
        """Get scratch usage statistics."""
        total_size = 0
        directory_count = 0
        
        for scratch_path in self.list_scratch_directories():
            directory_count += 1
            for file_path in scratch_path.rglob("*"):
                if file_path.is_file():
                    total_size += file_path.stat().st_size
        
        return {
            "total_size_bytes": total_size,
            "scratch_directories": directory_count,
            "temp_directory": str(self.temp_dir),
        }
