"""
URL configuration for pharmasite project.
"""
from django.contrib import admin
from django.urls import path, include
from rest_framework.authtoken import views as drf_authtoken_views

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('api.urls')),
    path('api-token-auth/', drf_authtoken_views.obtain_auth_token, name='api-token-auth'),
    path('api-auth/', include('rest_framework.urls')),
]
