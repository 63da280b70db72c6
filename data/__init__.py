# /data/__init__.py
