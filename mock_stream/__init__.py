"""
OneStopRadio mock stream server: real-time DJ session collaboration
"""
