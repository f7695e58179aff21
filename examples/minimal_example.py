#!/usr/bin/env python3
"""
Minimal Example: kltrack API Usage
==================================

Shows the essential API calls without extra boilerplate.
This is the "quick reference" version.
"""

import sys

import cv2

from kltrack import KltConfig, KltTracker
from kltrack.tracking.track_io import write_feature_file


# =============================================================================
# STEP 1: CONFIGURATION
# Equivalent to: KLT_WINDOW_SIZE=9 KLT_MIN_FEATURE_DISTANCE=12 kltrack ...
# =============================================================================

input_video = sys.argv[1] if len(sys.argv) > 1 else "input.mp4"

config = KltConfig(window_size=9, min_feature_distance=12.0, pyramid_levels=3)
tracker = KltTracker(config, num_features=200, max_workers=4)


# =============================================================================
# STEP 2: TRACKING
# =============================================================================

cap = cv2.VideoCapture(input_video)
frame_num = 0
while True:
    ret, frame = cap.read()
    if not ret:
        break
    frame_num += 1

    features, ids, stats = tracker.update(frame)
    print(
        f"Frame {frame_num}: {stats.tracked} tracked, {stats.lost} lost, "
        f"{stats.added} added, {stats.total} total"
    )

    # One feature file per frame
    write_feature_file(f"features{frame_num:04d}.txt", features, header=f"frame {frame_num}")

cap.release()

center = tracker.get_center()
if center is not None:
    print(f"Final centroid: ({center[0]:.1f}, {center[1]:.1f})")
