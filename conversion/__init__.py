"""Image to PDF conversion microservice."""
