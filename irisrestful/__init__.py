"""HTTP/RESTful tile and metadata server for whole-slide images, with its request parser, serializer, queues and thread pool."""

__version__ = "0.1.0"