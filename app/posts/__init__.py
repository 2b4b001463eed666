"""
Community feed: posts with media, comments, likes, saves, shares, pins and polls.
"""
