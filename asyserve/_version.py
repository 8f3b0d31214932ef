
__version__ = "0.1.0"
__banner__ = \
"""
# asyserve %s 
# Directory browsing, download and upload over HTTP
""" % __version__ 
