"""Temporal smoothing of fused camera positions."""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
from numpy.typing import NDArray

from fiducial_locator.core.config import FilterSettings
from fiducial_locator.core.logging import get_logger

logger = get_logger(__name__)


class PositionKalmanFilter:
    """3D Kalman filter for smoothing camera position tracking.

    State vector: [x, y, z, vx, vy, vz] (position and velocity)
    Measurement: [x, y, z] (position only)

    The transition matrix is rebuilt on every update from the real time
    elapsed since the previous one. Not thread-safe: feed it from a single
    camera stream.
    """

    def __init__(
        self,
        process_noise: float = 1e-4,
        measurement_noise: float = 1e-2,
        initial_error_covariance: float = 1.0,
        initial_state: Sequence[float] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize Kalman filter.

        Args:
            process_noise: Process noise covariance (higher = trust measurements more)
            measurement_noise: Measurement noise covariance (higher = trust predictions more)
            initial_error_covariance: Diagonal of the initial state covariance
            initial_state: Starting [x, y, z, vx, vy, vz] (zeros if None)
            clock: Monotonic clock in seconds, used for timestamp control
        """
        self._process_noise = process_noise
        self._measurement_noise = measurement_noise
        self._initial_error_covariance = initial_error_covariance
        self._initial_state = (
            np.asarray(initial_state, dtype=np.float64).reshape(6)
            if initial_state is not None
            else np.zeros(6, dtype=np.float64)
        )
        self._clock = clock
        self._last_update_timestamp: float | None = None

        # Transition matrix, rebuilt for each dt
        self.F: NDArray[np.floating[Any]] = self._transition_matrix(1.0)

        # Measurement matrix (observe position only)
        self.H: NDArray[np.floating[Any]] = np.hstack(
            [np.eye(3, dtype=np.float64), np.zeros((3, 3), dtype=np.float64)]
        )

        self.Q: NDArray[np.floating[Any]] = np.eye(6, dtype=np.float64) * process_noise
        self.R: NDArray[np.floating[Any]] = np.eye(3, dtype=np.float64) * measurement_noise

        # State estimate and covariance
        self.x: NDArray[np.floating[Any]] = self._initial_state.copy()
        self.P: NDArray[np.floating[Any]] = np.eye(6, dtype=np.float64) * initial_error_covariance

    @classmethod
    def from_settings(cls, settings: FilterSettings | None = None) -> PositionKalmanFilter:
        """Create a filter from settings (uses defaults if None)."""
        settings = settings or FilterSettings()
        return cls(
            process_noise=settings.process_noise,
            measurement_noise=settings.measurement_noise,
            initial_error_covariance=settings.initial_error_covariance,
        )

    @property
    def process_noise(self) -> float:
        """Isotropic process noise."""
        return self._process_noise

    @process_noise.setter
    def process_noise(self, value: float) -> None:
        self._process_noise = value
        self.Q = np.eye(6, dtype=np.float64) * value

    @property
    def measurement_noise(self) -> float:
        """Isotropic measurement noise."""
        return self._measurement_noise

    @measurement_noise.setter
    def measurement_noise(self, value: float) -> None:
        self._measurement_noise = value
        self.R = np.eye(3, dtype=np.float64) * value

    @property
    def position(self) -> tuple[float, float, float]:
        """Current position estimate (x, y, z)."""
        return float(self.x[0]), float(self.x[1]), float(self.x[2])

    @property
    def velocity(self) -> tuple[float, float, float]:
        """Current velocity estimate (vx, vy, vz)."""
        return float(self.x[3]), float(self.x[4]), float(self.x[5])

    @property
    def last_update_timestamp(self) -> float | None:
        """Clock reading of the last timestamp-controlled update."""
        return self._last_update_timestamp

    def reset(self) -> None:
        """Reset filter state, covariance and timestamp."""
        self.x = self._initial_state.copy()
        self.P = np.eye(6, dtype=np.float64) * self._initial_error_covariance
        self.F = self._transition_matrix(1.0)
        self._last_update_timestamp = None

    def reset_last_update_timestamp(self) -> None:
        """Forget the last timestamp so the next timed update uses dt = 1."""
        self._last_update_timestamp = None

    @staticmethod
    def _transition_matrix(dt: float) -> NDArray[np.floating[Any]]:
        """Constant velocity model: position += dt * velocity."""
        F = np.eye(6, dtype=np.float64)
        F[0, 3] = dt
        F[1, 4] = dt
        F[2, 5] = dt
        return F

    def predict(self) -> tuple[float, float, float]:
        """Predict next state.

        Returns:
            Predicted (x, y, z) position
        """
        self.x = self.F @ self.x
        self.P = self.F @ self.P @ self.F.T + self.Q

        return self.position

    def correct(self, x: float, y: float, z: float) -> tuple[float, float, float]:
        """Correct the predicted state with a position measurement.

        Returns:
            Corrected (x, y, z) position
        """
        measurement = np.array([x, y, z], dtype=np.float64)

        # Measurement residual
        residual = measurement - self.H @ self.x

        # Residual covariance
        S = self.H @ self.P @ self.H.T + self.R

        # Kalman gain
        K = self.P @ self.H.T @ np.linalg.pinv(S)

        self.x = self.x + K @ residual

        identity = np.eye(6, dtype=np.float64)
        self.P = (identity - K @ self.H) @ self.P

        return self.position

    def update_with_delta(self, x: float, y: float, z: float, dt: float) -> tuple[float, float, float]:
        """Update the filter with a measurement taken dt seconds after the previous one.

        Args:
            x: Measured x position
            y: Measured y position
            z: Measured z position
            dt: Time since the previous update

        Returns:
            Filtered (x, y, z) position
        """
        if not math.isfinite(dt) or dt <= 0:
            # No time has elapsed, keep the current estimate
            logger.debug("Ignoring measurement with dt=%s", dt)
            return self.position

        if not all(math.isfinite(v) for v in (x, y, z)):
            logger.debug("Ignoring non-finite measurement (%s, %s, %s)", x, y, z)
            return self.position

        self.F = self._transition_matrix(dt)
        self.predict()
        return self.correct(x, y, z)

    def update_with_timestamp_control(self, x: float, y: float, z: float) -> tuple[float, float, float]:
        """Update the filter, measuring dt with the internal clock.

        The first call after construction or a timestamp reset uses dt = 1.

        Returns:
            Filtered (x, y, z) position
        """
        now = self._clock()
        dt = 1.0
        if self._last_update_timestamp is not None:
            dt = now - self._last_update_timestamp
        self._last_update_timestamp = now

        return self.update_with_delta(x, y, z, dt)
