from setuptools import find_packages, setup

# Development install with the test tools:
#   pip install -e .[test]
#   python -m playwright install chromium   (HTML invoice renderer only)

setup(
    name='DealerDesk',
    version='1.0.0',
    description="Car dealership back office: stock, invoices, vehicle documents and valuations",
    packages=find_packages(include=['dealerdesk', 'dealerdesk.*']),
    python_requires='>=3.10',
    install_requires=[
        'fastapi>=0.110',
        'uvicorn>=0.29',
        'pydantic>=2.5',
        'python-multipart',
        'httpx>=0.27',
        'reportlab>=4.0',
        'playwright>=1.40',
        'bcrypt>=4.0',
        'PyJWT>=2.8',
    ],
    extras_require={
        'test': ['pytest>=7.4', 'Pillow>=10.0'],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Framework :: FastAPI',
    ],
)
