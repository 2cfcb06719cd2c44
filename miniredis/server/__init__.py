"""RESP request parsing and a threaded TCP command server."""