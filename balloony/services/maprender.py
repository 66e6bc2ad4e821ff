"""
Map image rendering for sonde updates.

Draws the predicted flight path, the predicted landing point and the
sonde's current position onto a PNG held in memory, ready to attach to a
Discord update. Figures are built with the object-oriented matplotlib API
(no pyplot state), so workers can render concurrently.
"""

import io
import logging
from typing import Optional

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure

from balloony.models import Prediction, TelemetryRecord

logger = logging.getLogger(__name__)

DPI = 100

# Padding around the plotted area, in degrees
MIN_SPAN_DEG = 0.05


class MapRenderer:
    """Renders a sonde position and prediction to PNG bytes."""

    def __init__(self, width_px: int = 1280, height_px: int = 720, enabled: bool = True):
        self.width_px = width_px
        self.height_px = height_px
        self.enabled = enabled

    def render(self, record: TelemetryRecord, prediction: Prediction) -> Optional[bytes]:
        """
        Render the map, or return None when rendering is disabled or fails.

        A missing image never blocks an update, so failures are logged
        rather than raised.
        """
        if not self.enabled:
            return None

        try:
            return self._render(record, prediction)
        except (ValueError, RuntimeError, OSError) as e:
            logger.warning(f'Error rendering map image for {record.serial}: {e}')
            return None

    def _render(self, record: TelemetryRecord, prediction: Prediction) -> bytes:
        fig = Figure(figsize=(self.width_px / DPI, self.height_px / DPI), dpi=DPI)
        FigureCanvasAgg(fig)
        ax = fig.add_subplot(1, 1, 1)

        lats = [record.lat, prediction.latitude]
        lons = [record.lon, prediction.longitude]

        if len(prediction.path) > 1:
            path_lats = [s.lat for s in prediction.path]
            path_lons = [s.lon for s in prediction.path]
            ax.plot(path_lons, path_lats, color='red', linewidth=2, label='Predicted path')
            lats.extend(path_lats)
            lons.extend(path_lons)

        marker = 'v' if record.vel_v < 0 else '^'
        ax.scatter([record.lon], [record.lat], s=140, c='red', marker=marker,
                   zorder=3, label=f'{record.serial} ({record.alt:,.0f} m)')
        ax.scatter([prediction.longitude], [prediction.latitude], s=160, c='green',
                   marker='X', zorder=3, label='Predicted landing')

        lat_pad = max((max(lats) - min(lats)) * 0.1, MIN_SPAN_DEG)
        lon_pad = max((max(lons) - min(lons)) * 0.1, MIN_SPAN_DEG)
        ax.set_xlim(min(lons) - lon_pad, max(lons) + lon_pad)
        ax.set_ylim(min(lats) - lat_pad, max(lats) + lat_pad)
        ax.set_aspect('equal', adjustable='datalim')
        ax.grid(True, alpha=0.3)
        ax.set_xlabel('Longitude')
        ax.set_ylabel('Latitude')
        ax.legend(loc='best')

        reported = record.datetime or record.time_received
        ax.set_title(
            f'Balloony - Tracking {record.type} {record.serial} on '
            f'{reported:%m/%d/%Y %H:%M:%S} (UTC) - Thanks to SondeHub!'
        )

        buf = io.BytesIO()
        fig.savefig(buf, format='png')
        return buf.getvalue()
