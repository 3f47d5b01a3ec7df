from exporters.formatters import EXPORT_FORMATS, ExportFormat, download_filename, write_exports

__all__ = ["EXPORT_FORMATS", "ExportFormat", "download_filename", "write_exports"]
