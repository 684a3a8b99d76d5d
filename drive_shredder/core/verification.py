"""
Post-wipe spot check
Samples the beginning, middle and end of a device and expects only zeros
after the final zero-fill pass
"""

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 1024 * 1024

@dataclass
class SampleResult:
    """Outcome of reading one region of the device"""
    region: str
    offset: int
    total_bytes: int
    zero_bytes: int

    @property
    def clean_percentage(self) -> float:
        if self.total_bytes == 0:
            return 0.0
        return (self.zero_bytes / self.total_bytes) * 100

    @property
    def is_clean(self) -> bool:
        return self.total_bytes > 0 and self.zero_bytes == self.total_bytes

@dataclass
class VerificationResult:
    device: str
    samples: List[SampleResult] = field(default_factory=list)
    error: str = ""

    @property
    def passed(self) -> bool:
        return not self.error and bool(self.samples) and all(s.is_clean for s in self.samples)

    @property
    def message(self) -> str:
        if self.error:
            return self.error
        parts = [f"{s.region} {s.clean_percentage:.2f}% zero" for s in self.samples]
        return ", ".join(parts)

class VerificationManager:
    """Zero-sample verification of wiped devices

    This is a spot check of three regions, not a full read-back.
    """

    def __init__(self, sample_size: int = DEFAULT_SAMPLE_SIZE):
        self.sample_size = sample_size

    def sample_offsets(self, size_bytes: int) -> List[Tuple[str, int]]:
        """Regions to read; devices smaller than three samples get one read at 0"""
        if size_bytes <= self.sample_size * 3:
            return [("beginning", 0)]
        middle = (size_bytes // 2) - (self.sample_size // 2)
        end = size_bytes - self.sample_size
        return [("beginning", 0), ("middle", middle), ("end", end)]

    def verify_wipe(self, device: str, size_bytes: int) -> VerificationResult:
        """Read the sample regions and check that they are all zero"""
        logger.info(f"Starting verification for {device}")
        result = VerificationResult(device=device)
        try:
            with open(device, 'rb') as f:
                for region, offset in self.sample_offsets(size_bytes):
                    f.seek(offset)
                    data = f.read(self.sample_size)
                    result.samples.append(self._analyze_sample(region, offset, data))
        except OSError as e:
            result.error = f"Could not read {device}: {e}"
            logger.error(result.error)
            return result

        if result.passed:
            logger.info(f"Verification passed for {device}: {result.message}")
        else:
            logger.warning(f"Verification failed for {device}: {result.message}")
        return result

    def _analyze_sample(self, region: str, offset: int, data: bytes) -> SampleResult:
        return SampleResult(
            region=region,
            offset=offset,
            total_bytes=len(data),
            zero_bytes=data.count(b'\x00'),
        )

