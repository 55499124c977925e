from setuptools import setup

setup(
    name="gemini-locale-sync",
    version="1.0.0",
    py_modules=["gemini_locale_sync"],
    install_requires=[
        "requests>=2.25.1",
        "python-dotenv>=0.19.0",
        "colorama>=0.4.4",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "gemini-locale-sync=gemini_locale_sync:main",
            "gemini-locale-sync-en-vi=gemini_locale_sync:main_en_vi",
        ],
    },
    author="Your Name",
    author_email="your.email@example.com",
    description="Fill missing keys of JSON i18n locale files using the Gemini API",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/gemini-locale-sync",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.7",
)
