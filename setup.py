import setuptools

VERSION = '0.1.0'

TEST_REQUIRES = [
    'mockito>=1.2',
    'pytest>=7.0',
    'pytest-cov>=4.0',
    'ddt>=1.4',
]

setup_params = dict(
    name='refetch',
    version=VERSION,
    keywords='requests retry 405 response body cache',
    packages=setuptools.find_packages(exclude=['tests', 'tests.*']),
    package_dir={'refetch': 'refetch'},
    include_package_data=True,
    description='Retry requests refused for carrying a body, and read response bodies as often as you like',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    install_requires=['requests>=2.28'],
    extras_require={
        'dev': TEST_REQUIRES,
        'test': TEST_REQUIRES,
    },
    entry_points={},
    python_requires='>=3.7',
    classifiers=[
        'Development Status :: 2 - Pre-Alpha',
        'Environment :: Web Environment',
        'Intended Audience :: Developers',
        'Natural Language :: English',
        'Operating System :: OS Independent',

        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3 :: Only',
    ],
)


if __name__ == '__main__':
    setuptools.setup(**setup_params)
