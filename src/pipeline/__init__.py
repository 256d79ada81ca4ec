"""
Image Processing Pipeline

Five-stage sequential pipeline per request:
1. Validate - request field types
2. Source - resolve and stat the source image
3. Destination - create OUTPUT_PATH/tenant/appKey
4. Execute - run ImageMagick once per operation
5. Record - insert one database record per artifact
"""
