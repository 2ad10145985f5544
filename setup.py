# type: ignore
from setuptools import find_packages, setup

# Get VERSION constant from flagsync.version - we can't simply import that module because
# flagsync/__init__.py imports all kinds of stuff that requires dependencies we may not have
# loaded yet. Based on https://packaging.python.org/guides/single-sourcing-package-version/
version_module_globals = {}
with open('./flagsync/version.py') as f:
    exec(f.read(), version_module_globals)
flagsync_version = version_module_globals['VERSION']

def parse_requirements(filename):
    """ load requirements from a pip requirements file """
    lineiter = (line.strip() for line in open(filename))
    return [line for line in lineiter if line and not line.startswith("#")]

install_reqs = parse_requirements('requirements.txt')
test_reqs = parse_requirements('test-requirements.txt')
redis_reqs = parse_requirements('redis-requirements.txt')

setup(
    name='flagsync-sdk',
    version=flagsync_version,
    packages=find_packages(exclude=['testing', 'testing.*']),
    description='Real-time flag and segment synchronization for Python',
    long_description='Keeps a local repository of feature flag definitions and segment memberships in sync over streaming and polling',
    install_requires=install_reqs,
    python_requires='>=3.8',
    classifiers=[
        'Intended Audience :: Developers',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Software Development',
        'Topic :: Software Development :: Libraries',
    ],
    extras_require={
        "redis": redis_reqs,
        "test": test_reqs,
    },
    tests_require=test_reqs,
)
