"""
Core views for Starboard application
"""
from django.http import JsonResponse


def health_check(request):
    """Health check endpoint for monitoring"""
    return JsonResponse({
        'status': 'healthy',
        'service': 'starboard',
        'version': '0.1.0'
    })
